"""Stage netplan address changes per transaction and apply them on commit.

The coordinator keeps the host's netplan document in step with HAProxy binds
without being part of the HAProxy transaction itself:

1. While an HAProxy transaction is open, bind creations and deletions stage
   ``add``/``remove`` changes into the journal under the same transaction id.
   The netplan document is not touched.
2. After the HAProxy transaction has committed, :meth:`NetplanCoordinator.commit`
   folds every staged change into the document, saves it, activates it, and
   archives the journal entry.

HAProxy state is authoritative. A failed netplan commit is recorded (the
journal entry is marked failed) and reported, but never rolls back HAProxy
and never undoes a document that was already activated.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from haproxy_configurator.config.settings import NetplanSettings
from haproxy_configurator.model.netplan import NetplanDocument
from haproxy_configurator.model.transaction import OP_ADD, OP_REMOVE, TransactionChange
from haproxy_configurator.netplan.activation import NetplanActivator, NullActivator
from haproxy_configurator.netplan.errors import (
    ActivationError,
    ChangeApplyError,
    NetplanIOError,
    TransactionNotPendingError,
)
from haproxy_configurator.netplan.journal import (
    FileTransactionJournal,
    TransactionJournal,
    validate_transaction_id,
)
from haproxy_configurator.netplan.resolver import SubnetResolver, parse_ip
from haproxy_configurator.netplan.store import MATCHERS, NetplanStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a successful :meth:`NetplanCoordinator.commit`."""

    transaction_id: str
    changes_applied: int


class NetplanCoordinator:
    """Owns the journal, the netplan store and the tracked-address map.

    Args:
        resolver: Maps IPs to interfaces and masks.
        store: The managed netplan document.
        journal: Durable staging area for pending changes.
        activator: Applies the saved document to the host.
    """

    def __init__(
        self,
        resolver: SubnetResolver,
        store: NetplanStore,
        journal: TransactionJournal,
        activator: NetplanActivator | NullActivator,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.journal = journal
        self.activator = activator
        self._addresses: dict[str, str] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_settings(
        cls,
        settings: NetplanSettings,
        activator: NetplanActivator | NullActivator | None = None,
    ) -> NetplanCoordinator:
        """Build a coordinator with file-backed store and journal from *settings*."""
        logger.info(
            "Initializing netplan coordinator: config=%s transaction_dir=%s backup=%s",
            settings.netplan_config_path,
            settings.transaction_dir,
            settings.backup_enabled,
        )
        return cls(
            resolver=SubnetResolver(settings.interface_mappings),
            store=NetplanStore(
                settings.netplan_config_path,
                backup_enabled=settings.backup_enabled,
                matcher=MATCHERS[settings.address_match],
            ),
            journal=FileTransactionJournal(settings.transaction_dir),
            activator=activator
            or NetplanActivator(settings.netplan_command, timeout_s=settings.apply_timeout_s),
        )

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def stage_add(self, transaction_id: str, ip_address: str, port: int = 0) -> TransactionChange:
        """Stage assignment of *ip_address* under *transaction_id*.

        The interface and mask come from the same mapping lookup, so an
        unmapped address stages nothing. The raised error still carries the
        ``/32`` fallback mask for callers that report it.

        Raises:
            InvalidAddressError: If *ip_address* is empty or malformed.
            InvalidTransactionIdError: If *transaction_id* is unusable.
            InterfaceNotFoundError: If no mapping contains *ip_address*;
                nothing is staged.
            TransactionNotPendingError: If the transaction is no longer pending.
        """
        validate_transaction_id(transaction_id)
        parse_ip(ip_address)
        logger.debug(
            "Staging add of %s (port %d) in transaction %s", ip_address, port, transaction_id
        )
        interface, mask = self.resolver.resolve(ip_address)

        change = TransactionChange(
            operation=OP_ADD,
            ip_address=ip_address,
            interface=interface,
            port=port,
            subnet_mask=mask,
        )
        self.journal.append(transaction_id, change)
        return change

    def stage_remove(self, transaction_id: str, ip_address: str) -> TransactionChange:
        """Stage removal of *ip_address* under *transaction_id*.

        The address does not need to be tracked.

        Raises:
            InvalidAddressError: If *ip_address* is empty or malformed.
            InterfaceNotFoundError: If no mapping contains *ip_address*.
            TransactionNotPendingError: If the transaction is no longer pending.
        """
        validate_transaction_id(transaction_id)
        parse_ip(ip_address)
        logger.debug("Staging removal of %s in transaction %s", ip_address, transaction_id)
        change = TransactionChange(
            operation=OP_REMOVE,
            ip_address=ip_address,
            interface=self.resolver.resolve_interface(ip_address),
        )
        self.journal.append(transaction_id, change)
        return change

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self, transaction_id: str) -> CommitResult:
        """Apply every staged change of *transaction_id* to the host.

        Runs load → apply → save → activate → track → archive while holding
        the coordinator lock. Any failure before archival marks the journal
        entry failed. A document that was saved before activation failed
        stays on disk.

        Raises:
            TransactionNotFoundError: If nothing was staged under the id.
            TransactionNotPendingError: If the transaction is not pending.
            ChangeApplyError: If a change cannot be folded into the document;
                nothing is saved.
            NetplanIOError: If the document cannot be loaded or saved.
            ActivationError: If netplan apply fails.
            ArchivalError: If all side effects happened but the journal entry
                could not be archived.
        """
        validate_transaction_id(transaction_id)
        with self._lock, self.journal.lock(transaction_id):
            logger.info("Committing netplan transaction %s", transaction_id)
            transaction = self.journal.load(transaction_id)
            if not transaction.is_pending:
                raise TransactionNotPendingError(transaction_id, transaction.status)

            try:
                doc = self.store.load()
            except NetplanIOError as exc:
                self.journal.mark_failed(transaction_id, exc)
                raise

            for change in transaction.changes:
                try:
                    self._apply_change(doc, change)
                except (ValueError, TypeError, AttributeError) as exc:
                    logger.error(
                        "Failed to apply change %r of transaction %s: %s",
                        change,
                        transaction_id,
                        exc,
                    )
                    self.journal.mark_failed(transaction_id, exc)
                    raise ChangeApplyError(transaction_id, change, exc) from exc

            try:
                self.store.save(doc)
            except NetplanIOError as exc:
                self.journal.mark_failed(transaction_id, exc)
                raise

            try:
                self.activator.apply()
            except ActivationError as exc:
                logger.error(
                    "Netplan document for transaction %s saved but activation failed: %s",
                    transaction_id,
                    exc,
                )
                self.journal.mark_failed(transaction_id, exc)
                raise

            for change in transaction.changes:
                if change.operation == OP_ADD:
                    self._addresses[change.ip_address] = change.interface
                else:
                    self._addresses.pop(change.ip_address, None)

            self.journal.archive(transaction_id)

        logger.info(
            "Committed netplan transaction %s (%d change(s) applied)",
            transaction_id,
            len(transaction.changes),
        )
        return CommitResult(transaction_id=transaction_id, changes_applied=len(transaction.changes))

    def discard(self, transaction_id: str) -> bool:
        """Mark a pending transaction failed without applying it.

        Used when the matching HAProxy transaction is closed instead of
        committed.

        Returns:
            ``True`` if a pending transaction was discarded.
        """
        validate_transaction_id(transaction_id)
        with self.journal.lock(transaction_id):
            if not self.journal.exists(transaction_id):
                return False
            if not self.journal.load(transaction_id).is_pending:
                return False
            self.journal.mark_failed(transaction_id, "discarded: HAProxy transaction closed")
        logger.info("Discarded netplan transaction %s", transaction_id)
        return True

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def tracked_addresses(self) -> dict[str, str]:
        """Copy of the IP → interface map of addresses applied by this process."""
        with self._lock:
            return dict(self._addresses)

    def status(self) -> dict[str, Any]:
        """Summary of the integration suitable for a status endpoint."""
        return {
            "enabled": True,
            "config_path": str(self.store.path),
            "backup_enabled": self.store.backup_enabled,
            "interface_mappings": self.resolver.mapping_count,
            "tracked_addresses": self.tracked_addresses(),
        }

    def _apply_change(self, doc: NetplanDocument, change: TransactionChange) -> None:
        if not change.interface:
            raise ValueError(f"change for {change.ip_address} has no interface")
        if change.operation == OP_ADD:
            self.store.add_address(
                doc, change.interface, change.ip_address, change.subnet_mask or "/32"
            )
        elif change.operation == OP_REMOVE:
            self.store.remove_address(doc, change.interface, change.ip_address)
        else:
            raise ValueError(f"unknown operation: {change.operation}")
