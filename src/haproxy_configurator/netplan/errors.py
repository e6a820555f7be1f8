"""Exceptions raised by the netplan transaction core.

The hierarchy mirrors the failure taxonomy callers act on:

- validation (:class:`InvalidAddressError`, :class:`InvalidTransactionIdError`)
  aborts with no side effects.
- resolution (:class:`InterfaceNotFoundError`) carries the ``/32`` fallback
  mask an add may degrade to.
- journal state (:class:`TransactionNotFoundError`,
  :class:`TransactionNotPendingError`).
- io (:class:`NetplanIOError`, :class:`JournalError`).
- commit-time failures (:class:`ChangeApplyError`, :class:`ActivationError`,
  :class:`ArchivalError`).
"""

from __future__ import annotations

from haproxy_configurator.errors import HAProxyConfiguratorError

FALLBACK_MASK: str = "/32"


class NetplanError(HAProxyConfiguratorError):
    """Base exception for all netplan core errors."""


class InvalidAddressError(NetplanError, ValueError):
    """Raised when an IP address is empty or cannot be parsed."""

    def __init__(self, ip_address: str) -> None:
        self.ip_address = ip_address
        if not ip_address:
            msg = "IP address cannot be empty"
        else:
            msg = f"Invalid IP address: {ip_address!r}"
        super().__init__(msg)


class InvalidTransactionIdError(NetplanError, ValueError):
    """Raised when a transaction id is empty or not a safe filename component."""

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Invalid transaction id: {transaction_id!r}")


class InterfaceNotFoundError(NetplanError):
    """Raised when no interface mapping contains an IP address.

    Attributes:
        ip_address: The address that failed to resolve.
        fallback_mask: Mask an add operation may degrade to (``"/32"``).
    """

    fallback_mask: str = FALLBACK_MASK

    def __init__(self, ip_address: str) -> None:
        self.ip_address = ip_address
        super().__init__(f"No interface mapping found for IP {ip_address}")


class TransactionNotFoundError(NetplanError):
    """Raised when a journal transaction does not exist."""

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id!r} not found")


class TransactionNotPendingError(NetplanError):
    """Raised when a transaction is modified or committed outside ``pending``."""

    def __init__(self, transaction_id: str, status: str) -> None:
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(
            f"Transaction {transaction_id!r} is not in pending status: {status}"
        )


class NetplanIOError(NetplanError):
    """Raised when the netplan document cannot be read, parsed or written."""


class JournalError(NetplanError):
    """Raised when a journal file cannot be read, parsed or written."""


class ChangeApplyError(NetplanError):
    """Raised when a staged change cannot be folded into the netplan document."""

    def __init__(self, transaction_id: str, change: object, cause: Exception) -> None:
        self.transaction_id = transaction_id
        self.change = change
        self.cause = cause
        super().__init__(
            f"Failed to apply change {change!r} of transaction {transaction_id!r}: {cause}"
        )


class ActivationError(NetplanError):
    """Raised when the netplan apply command fails.

    Attributes:
        command: The argv that was executed.
        returncode: Exit status, or ``None`` if the process never completed.
        output: Combined stdout/stderr.
    """

    def __init__(
        self,
        command: list[str],
        returncode: int | None,
        output: str,
        reason: str = "",
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        what = reason or f"exit status {returncode}"
        super().__init__(
            f"Command {' '.join(command)!r} failed ({what}): {output.strip()}"
        )


class ArchivalError(NetplanError):
    """Raised when a committed transaction cannot be moved to the archive.

    The netplan side effects of the commit have already happened; the journal
    is out of step with the host and needs manual reconciliation.
    """

    def __init__(self, transaction_id: str, cause: Exception) -> None:
        self.transaction_id = transaction_id
        self.cause = cause
        super().__init__(
            f"Transaction {transaction_id!r} was applied but could not be archived: {cause}"
        )
