"""Typed model for netplan journal transactions."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Literal

Operation = Literal["add", "remove"]
TransactionStatus = Literal["pending", "committed", "failed"]

OP_ADD: Operation = "add"
OP_REMOVE: Operation = "remove"

STATUS_PENDING: TransactionStatus = "pending"
STATUS_COMMITTED: TransactionStatus = "committed"
STATUS_FAILED: TransactionStatus = "failed"


@dataclass(frozen=True)
class TransactionChange:
    """One staged IP-assignment change.

    Attributes:
        operation: ``"add"`` or ``"remove"``.
        ip_address: Address without mask.
        interface: Resolved interface identifier (``label@parent`` for VLANs).
        port: Bind port the address was staged for (informational only).
        subnet_mask: CIDR suffix such as ``"/24"`` (adds only).
    """

    operation: Operation
    ip_address: str
    interface: str
    port: int = 0
    subnet_mask: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "operation": self.operation,
            "ip_address": self.ip_address,
            "interface": self.interface,
        }
        if self.port:
            out["port"] = self.port
        if self.subnet_mask:
            out["subnet_mask"] = self.subnet_mask
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransactionChange:
        return cls(
            operation=data["operation"],
            ip_address=data["ip_address"],
            interface=data["interface"],
            port=int(data.get("port") or 0),
            subnet_mask=str(data.get("subnet_mask") or ""),
        )


@dataclass
class Transaction:
    """A journal entry: the netplan changes staged under one transaction id.

    Changes may only be appended while :attr:`status` is ``"pending"``; the
    status then moves once, to ``"committed"`` or ``"failed"``.

    Attributes:
        transaction_id: Caller-supplied id, normally the HAProxy transaction id.
        created_at: Creation time (UTC).
        status: ``"pending"``, ``"committed"`` or ``"failed"``.
        changes: Staged changes in append order.
        error: Failure description for failed transactions.
    """

    transaction_id: str
    created_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )
    status: TransactionStatus = STATUS_PENDING
    changes: list[TransactionChange] = field(default_factory=list)
    error: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "transaction_id": self.transaction_id,
            "created_at": self.created_at.isoformat(),
            "status": self.status,
            "changes": [c.to_dict() for c in self.changes],
        }
        if self.error:
            out["error"] = self.error
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        return cls(
            transaction_id=str(data["transaction_id"]),
            created_at=datetime.datetime.fromisoformat(data["created_at"]),
            status=data.get("status", STATUS_PENDING),
            changes=[TransactionChange.from_dict(c) for c in data.get("changes") or []],
            error=str(data.get("error") or ""),
        )
