"""Durable journal of staged netplan changes, keyed by transaction id.

:class:`TransactionJournal` defines the contract (append, load, mark failed,
archive) on top of four storage primitives. :class:`FileTransactionJournal`
keeps one indented JSON file per open transaction::

    <dir>/transaction-<id>.json            pending or failed
    <dir>/committed/transaction-<id>.json  archived after a successful commit

:class:`MemoryTransactionJournal` implements the same primitives in process.
"""

from __future__ import annotations

import abc
import contextlib
import json
import logging
import os
import pathlib
import re
import tempfile
import threading
import weakref
from collections.abc import Iterator

from haproxy_configurator.model.transaction import (
    STATUS_COMMITTED,
    STATUS_FAILED,
    Transaction,
    TransactionChange,
)
from haproxy_configurator.netplan.errors import (
    ArchivalError,
    InvalidTransactionIdError,
    JournalError,
    TransactionNotFoundError,
    TransactionNotPendingError,
)

logger = logging.getLogger(__name__)

COMMITTED_DIRNAME: str = "committed"

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_transaction_id(transaction_id: str) -> None:
    """Raise :exc:`InvalidTransactionIdError` unless *transaction_id* is a safe file name part."""
    if not transaction_id or not _SAFE_ID_RE.match(transaction_id):
        raise InvalidTransactionIdError(transaction_id)


class TransactionJournal(abc.ABC):
    """Journal contract shared by all backing stores.

    Every public method serialises on a lock scoped to the transaction id, so
    two appends to the same id never lose an update while different ids never
    block each other. :meth:`lock` exposes that lock to callers that need to
    hold it across several calls (the commit path does). A per-id lock only
    lives while some caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def _read(self, transaction_id: str) -> Transaction | None:
        """Return the open (non-archived) transaction, or ``None`` if absent."""

    @abc.abstractmethod
    def _write(self, transaction: Transaction) -> None:
        """Persist *transaction* as the open entry for its id."""

    @abc.abstractmethod
    def _move_to_archive(self, transaction_id: str) -> None:
        """Move the open entry for *transaction_id* to the archive."""

    @abc.abstractmethod
    def _open_ids(self) -> list[str]:
        """Ids of all open (non-archived) entries."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def lock(self, transaction_id: str) -> Iterator[None]:
        """Hold the per-id lock for *transaction_id* (re-entrant)."""
        with self._locks_guard:
            id_lock = self._locks.get(transaction_id)
            if id_lock is None:
                id_lock = threading.RLock()
                self._locks[transaction_id] = id_lock
        with id_lock:
            yield

    def append(self, transaction_id: str, change: TransactionChange) -> Transaction:
        """Append *change*, creating a pending transaction if none exists.

        Raises:
            InvalidTransactionIdError: If the id is unusable as a key.
            TransactionNotPendingError: If the existing transaction is not pending.
            JournalError: If reading or writing the entry fails.
        """
        validate_transaction_id(transaction_id)
        with self.lock(transaction_id):
            transaction = self._read(transaction_id)
            if transaction is None:
                transaction = Transaction(transaction_id=transaction_id)
                logger.debug("Created journal transaction %s", transaction_id)
            if not transaction.is_pending:
                raise TransactionNotPendingError(transaction_id, transaction.status)
            transaction.changes.append(change)
            self._write(transaction)
        logger.debug(
            "Appended %s %s to transaction %s (%d change(s))",
            change.operation,
            change.ip_address,
            transaction_id,
            len(transaction.changes),
        )
        return transaction

    def load(self, transaction_id: str) -> Transaction:
        """Return the open transaction for *transaction_id*.

        Raises:
            TransactionNotFoundError: If there is no open entry.
            JournalError: If the entry cannot be read or parsed.
        """
        validate_transaction_id(transaction_id)
        with self.lock(transaction_id):
            transaction = self._read(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def exists(self, transaction_id: str) -> bool:
        """True if an open entry exists for *transaction_id*."""
        validate_transaction_id(transaction_id)
        with self.lock(transaction_id):
            return self._read(transaction_id) is not None

    def save(self, transaction: Transaction) -> None:
        """Persist *transaction* as-is."""
        validate_transaction_id(transaction.transaction_id)
        with self.lock(transaction.transaction_id):
            self._write(transaction)

    def mark_failed(self, transaction_id: str, error: object = "") -> None:
        """Flip the transaction to ``failed`` (best effort; never raises)."""
        try:
            with self.lock(transaction_id):
                transaction = self._read(transaction_id)
                if transaction is None or not transaction.is_pending:
                    return
                transaction.status = STATUS_FAILED
                transaction.error = str(error)
                self._write(transaction)
        except Exception:  # noqa: BLE001
            logger.debug("Could not mark transaction %s failed (ignored)", transaction_id, exc_info=True)
            return
        logger.info("Marked transaction %s as failed", transaction_id)

    def archive(self, transaction_id: str) -> None:
        """Mark the transaction committed and move it to the archive.

        Raises:
            ArchivalError: If the status update or the move fails.
        """
        with self.lock(transaction_id):
            try:
                transaction = self._read(transaction_id)
                if transaction is None:
                    raise TransactionNotFoundError(transaction_id)
                transaction.status = STATUS_COMMITTED
                transaction.error = ""
                self._write(transaction)
                self._move_to_archive(transaction_id)
            except (OSError, JournalError, TransactionNotFoundError) as exc:
                raise ArchivalError(transaction_id, exc) from exc
        logger.debug("Archived transaction %s", transaction_id)

    def list_pending(self) -> list[str]:
        """Sorted ids of open transactions whose status is still ``pending``."""
        pending: list[str] = []
        for transaction_id in sorted(self._open_ids()):
            try:
                transaction = self.load(transaction_id)
            except (JournalError, TransactionNotFoundError, InvalidTransactionIdError):
                logger.warning("Skipping unreadable journal entry %s", transaction_id)
                continue
            if transaction.is_pending:
                pending.append(transaction_id)
        return pending


class FileTransactionJournal(TransactionJournal):
    """One JSON file per open transaction under *directory*.

    Args:
        directory: Journal directory; it and its ``committed/`` subdirectory
            are created if missing.

    Raises:
        JournalError: If the directories cannot be created.
    """

    def __init__(self, directory: str | pathlib.Path) -> None:
        super().__init__()
        self.directory: pathlib.Path = pathlib.Path(directory)
        self.committed_directory: pathlib.Path = self.directory / COMMITTED_DIRNAME
        try:
            self.committed_directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise JournalError(
                f"failed to create journal directory {str(self.directory)!r}: {exc}"
            ) from exc

    def path_for(self, transaction_id: str) -> pathlib.Path:
        """Path of the open entry for *transaction_id*."""
        return self.directory / _file_name(transaction_id)

    def archived_path_for(self, transaction_id: str) -> pathlib.Path:
        """Path of the archived entry for *transaction_id*."""
        return self.committed_directory / _file_name(transaction_id)

    def _read(self, transaction_id: str) -> Transaction | None:
        path = self.path_for(transaction_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise JournalError(f"failed to read transaction file {str(path)!r}: {exc}") from exc
        try:
            return Transaction.from_dict(json.loads(text))
        except (ValueError, KeyError, TypeError) as exc:
            raise JournalError(f"failed to parse transaction file {str(path)!r}: {exc}") from exc

    def _write(self, transaction: Transaction) -> None:
        path = self.path_for(transaction.transaction_id)
        text = json.dumps(transaction.to_dict(), indent=2)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                os.replace(tmp_name, path)
            except BaseException:
                pathlib.Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise JournalError(f"failed to write transaction file {str(path)!r}: {exc}") from exc

    def _move_to_archive(self, transaction_id: str) -> None:
        os.replace(self.path_for(transaction_id), self.archived_path_for(transaction_id))

    def _open_ids(self) -> list[str]:
        prefix, suffix = "transaction-", ".json"
        return [
            p.name[len(prefix) : -len(suffix)]
            for p in self.directory.glob(f"{prefix}*{suffix}")
            if p.is_file()
        ]


class MemoryTransactionJournal(TransactionJournal):
    """In-process journal; entries are copied in and out so callers never share state."""

    def __init__(self) -> None:
        super().__init__()
        self._open: dict[str, dict[str, object]] = {}
        self.archived: dict[str, Transaction] = {}

    def _read(self, transaction_id: str) -> Transaction | None:
        data = self._open.get(transaction_id)
        return Transaction.from_dict(data) if data is not None else None

    def _write(self, transaction: Transaction) -> None:
        self._open[transaction.transaction_id] = transaction.to_dict()

    def _move_to_archive(self, transaction_id: str) -> None:
        data = self._open.pop(transaction_id)
        self.archived[transaction_id] = Transaction.from_dict(data)

    def _open_ids(self) -> list[str]:
        return list(self._open)


def _file_name(transaction_id: str) -> str:
    return f"transaction-{transaction_id}.json"
