"""Typed models for HAProxy configuration resources.

Each model converts to and from the Data Plane API JSON payload. Keys the
API returns that are not modelled here are ignored; ``None`` fields are left
out of request payloads so the API applies its own defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


@dataclass
class Transaction:
    """An HAProxy configuration transaction.

    Attributes:
        id: Transaction id assigned by the API.
        status: ``"in_progress"``, ``"success"``, ``"failed"``...
        version: Configuration version the transaction was opened against.
    """

    id: str
    status: str = ""
    version: int | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Transaction:
        version = data.get("_version")
        return cls(
            id=str(data.get("id", "")),
            status=str(data.get("status", "")),
            version=int(version) if version is not None else None,
        )


@dataclass
class Backend:
    """A backend (server pool).

    Attributes:
        name: Unique backend name.
        mode: ``"tcp"`` or ``"http"``.
        balance_algorithm: Load-balancing algorithm (e.g. ``"roundrobin"``).
        id: Numeric id assigned by HAProxy.
    """

    name: str
    mode: str | None = None
    balance_algorithm: str | None = None
    id: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = _compact({"name": self.name, "mode": self.mode, "id": self.id})
        if self.balance_algorithm:
            payload["balance"] = {"algorithm": self.balance_algorithm}
        return payload

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Backend:
        balance = data.get("balance") or {}
        return cls(
            name=str(data.get("name", "")),
            mode=data.get("mode"),
            balance_algorithm=balance.get("algorithm"),
            id=data.get("id"),
        )


@dataclass
class Frontend:
    """A frontend (request entry point)."""

    name: str
    mode: str | None = None
    default_backend: str | None = None
    description: str | None = None
    disabled: bool | None = None
    enabled: bool | None = None
    id: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "mode": self.mode,
                "default_backend": self.default_backend,
                "description": self.description,
                "disabled": self.disabled,
                "enabled": self.enabled,
                "id": self.id,
            }
        )

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Frontend:
        return cls(
            name=str(data.get("name", "")),
            mode=data.get("mode"),
            default_backend=data.get("default_backend"),
            description=data.get("description"),
            disabled=data.get("disabled"),
            enabled=data.get("enabled"),
            id=data.get("id"),
        )


@dataclass
class Bind:
    """A listening address/port attached to a frontend."""

    name: str
    address: str | None = None
    port: int | None = None
    v4v6: bool | None = None
    v6only: bool | None = None
    id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "address": self.address,
                "port": self.port,
                "v4v6": self.v4v6,
                "v6only": self.v6only,
                "id": self.id,
            }
        )

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Bind:
        return cls(
            name=str(data.get("name", "")),
            address=data.get("address"),
            port=data.get("port"),
            v4v6=data.get("v4v6"),
            v6only=data.get("v6only"),
            id=data.get("id"),
        )


@dataclass
class Server:
    """A pool member of a backend."""

    name: str
    address: str | None = None
    port: int | None = None
    id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return _compact(
            {"name": self.name, "address": self.address, "port": self.port, "id": self.id}
        )

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Server:
        return cls(
            name=str(data.get("name", "")),
            address=data.get("address"),
            port=data.get("port"),
            id=data.get("id"),
        )
