"""Typed client for the HAProxy Data Plane API (v3).

Every configuration change is made inside a transaction: callers open one
with :meth:`DataPlaneClient.create_transaction`, pass its id to the write
methods, and finish with :meth:`~DataPlaneClient.commit_transaction` or
:meth:`~DataPlaneClient.close_transaction`. Reads take an optional
transaction id to see uncommitted state.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from haproxy_configurator.client.errors import DataPlaneParseError
from haproxy_configurator.client.http import DataPlaneHTTP
from haproxy_configurator.model.haproxy import Backend, Bind, Frontend, Server, Transaction
from haproxy_configurator.vendor.haproxy.endpoints import (
    BACKEND,
    BACKENDS,
    BIND,
    BINDS,
    CONFIGURATION_VERSION,
    FRONTEND,
    FRONTENDS,
    SERVER,
    SERVERS,
    TRANSACTION,
    TRANSACTIONS,
)

logger = logging.getLogger(__name__)

_M = TypeVar("_M", Backend, Frontend, Bind, Server)


class DataPlaneClient:
    """HAProxy Data Plane API operations keyed by name and transaction id.

    Args:
        base_url: API base URL, e.g. ``http://localhost:5555``.
        username: Basic-auth username.
        password: Basic-auth password.
        timeout_s: Request timeout in seconds (default 30).
        verify_tls: Whether to verify TLS certificates (default True).
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout_s: float = 30.0,
        verify_tls: bool = True,
    ) -> None:
        self._http: DataPlaneHTTP = DataPlaneHTTP(
            base_url=base_url,
            username=username,
            password=password,
            timeout_s=timeout_s,
            verify_tls=verify_tls,
        )

    @property
    def base_url(self) -> str:
        return self._http.base_url

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._http.close()

    def __enter__(self) -> DataPlaneClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Version and transactions
    # ------------------------------------------------------------------

    def get_version(self) -> int:
        """Return the current configuration version."""
        data = self._json(self._http.get(CONFIGURATION_VERSION).text, CONFIGURATION_VERSION)
        try:
            return int(data)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise DataPlaneParseError(
                f"Unexpected version payload from {CONFIGURATION_VERSION!r}: {data!r}"
            ) from exc

    def create_transaction(self, version: int) -> Transaction:
        """Open a transaction against configuration *version*."""
        resp = self._http.post(TRANSACTIONS, params={"version": str(version)})
        transaction = Transaction.from_payload(self._object(resp.text, TRANSACTIONS))
        logger.info("Opened HAProxy transaction %s (version %d)", transaction.id, version)
        return transaction

    def get_transaction(self, transaction_id: str) -> Transaction:
        path = TRANSACTION.format(transaction_id=transaction_id)
        return Transaction.from_payload(self._object(self._http.get(path).text, path))

    def commit_transaction(self, transaction_id: str) -> Transaction:
        """Commit a transaction, making its changes live."""
        path = TRANSACTION.format(transaction_id=transaction_id)
        transaction = Transaction.from_payload(self._object(self._http.put(path).text, path))
        logger.info("Committed HAProxy transaction %s", transaction_id)
        return transaction

    def close_transaction(self, transaction_id: str) -> str:
        """Discard a transaction without committing it.

        Returns:
            A human-readable confirmation message.
        """
        path = TRANSACTION.format(transaction_id=transaction_id)
        resp = self._http.delete(path)
        logger.info("Closed HAProxy transaction %s", transaction_id)
        return resp.text.strip() or f"Transaction {transaction_id} closed"

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    def list_backends(self, transaction_id: str = "") -> list[Backend]:
        return self._list(BACKENDS, Backend, transaction_id)

    def get_backend(self, name: str, transaction_id: str = "") -> Backend:
        return self._get(BACKEND.format(name=name), Backend, transaction_id)

    def add_backend(self, backend: Backend, transaction_id: str) -> Backend:
        return self._add(BACKENDS, backend, transaction_id)

    def replace_backend(self, name: str, backend: Backend, transaction_id: str) -> Backend:
        return self._replace(BACKEND.format(name=name), backend, transaction_id)

    def delete_backend(self, name: str, transaction_id: str) -> None:
        self._delete(BACKEND.format(name=name), transaction_id)

    # ------------------------------------------------------------------
    # Frontends
    # ------------------------------------------------------------------

    def list_frontends(self, transaction_id: str = "") -> list[Frontend]:
        return self._list(FRONTENDS, Frontend, transaction_id)

    def get_frontend(self, name: str, transaction_id: str = "") -> Frontend:
        return self._get(FRONTEND.format(name=name), Frontend, transaction_id)

    def add_frontend(self, frontend: Frontend, transaction_id: str) -> Frontend:
        return self._add(FRONTENDS, frontend, transaction_id)

    def replace_frontend(self, name: str, frontend: Frontend, transaction_id: str) -> Frontend:
        return self._replace(FRONTEND.format(name=name), frontend, transaction_id)

    def delete_frontend(self, name: str, transaction_id: str) -> None:
        self._delete(FRONTEND.format(name=name), transaction_id)

    # ------------------------------------------------------------------
    # Binds
    # ------------------------------------------------------------------

    def list_binds(self, frontend: str, transaction_id: str = "") -> list[Bind]:
        return self._list(BINDS.format(parent=frontend), Bind, transaction_id)

    def get_bind(self, name: str, frontend: str, transaction_id: str = "") -> Bind:
        return self._get(BIND.format(parent=frontend, name=name), Bind, transaction_id)

    def add_bind(self, frontend: str, bind: Bind, transaction_id: str) -> Bind:
        return self._add(BINDS.format(parent=frontend), bind, transaction_id)

    def replace_bind(self, frontend: str, bind: Bind, transaction_id: str) -> Bind:
        return self._replace(BIND.format(parent=frontend, name=bind.name), bind, transaction_id)

    def delete_bind(self, name: str, frontend: str, transaction_id: str) -> None:
        self._delete(BIND.format(parent=frontend, name=name), transaction_id)

    # ------------------------------------------------------------------
    # Servers
    # ------------------------------------------------------------------

    def list_servers(self, backend: str, transaction_id: str = "") -> list[Server]:
        return self._list(SERVERS.format(parent=backend), Server, transaction_id)

    def get_server(self, name: str, backend: str, transaction_id: str = "") -> Server:
        return self._get(SERVER.format(parent=backend, name=name), Server, transaction_id)

    def add_server(self, backend: str, server: Server, transaction_id: str) -> Server:
        return self._add(SERVERS.format(parent=backend), server, transaction_id)

    def replace_server(self, backend: str, server: Server, transaction_id: str) -> Server:
        return self._replace(
            SERVER.format(parent=backend, name=server.name), server, transaction_id
        )

    def delete_server(self, name: str, backend: str, transaction_id: str) -> None:
        self._delete(SERVER.format(parent=backend, name=name), transaction_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _list(self, path: str, model: type[_M], transaction_id: str) -> list[_M]:
        data = self._json(self._http.get(path, params=_tx_params(transaction_id)).text, path)
        if not isinstance(data, list):
            raise DataPlaneParseError(f"Expected a JSON list from {path!r}, got {type(data).__name__}")
        return [model.from_payload(item) for item in data if isinstance(item, dict)]

    def _get(self, path: str, model: type[_M], transaction_id: str) -> _M:
        resp = self._http.get(path, params=_tx_params(transaction_id))
        return model.from_payload(self._object(resp.text, path))

    def _add(self, path: str, obj: _M, transaction_id: str) -> _M:
        logger.debug("Adding %s %r (transaction %s)", type(obj).__name__, obj.name, transaction_id)
        resp = self._http.post(path, json_body=obj.to_payload(), params=_tx_params(transaction_id))
        return type(obj).from_payload(self._object(resp.text, path))

    def _replace(self, path: str, obj: _M, transaction_id: str) -> _M:
        logger.debug("Replacing %s %r (transaction %s)", type(obj).__name__, obj.name, transaction_id)
        resp = self._http.put(path, json_body=obj.to_payload(), params=_tx_params(transaction_id))
        return type(obj).from_payload(self._object(resp.text, path))

    def _delete(self, path: str, transaction_id: str) -> None:
        logger.debug("Deleting %s (transaction %s)", path, transaction_id)
        self._http.delete(path, params=_tx_params(transaction_id))

    @staticmethod
    def _json(text: str, endpoint: str) -> Any:
        """Parse *text* as JSON, raising :exc:`.DataPlaneParseError` on failure."""
        import json

        try:
            return json.loads(text)
        except (json.JSONDecodeError, ValueError) as exc:
            raise DataPlaneParseError(
                f"Non-JSON response from {endpoint!r}: {text[:200]!r}"
            ) from exc

    @classmethod
    def _object(cls, text: str, endpoint: str) -> dict[str, Any]:
        data = cls._json(text, endpoint)
        if not isinstance(data, dict):
            raise DataPlaneParseError(
                f"Expected a JSON object from {endpoint!r}, got {type(data).__name__}"
            )
        return data


def _tx_params(transaction_id: str) -> dict[str, str] | None:
    return {"transaction_id": transaction_id} if transaction_id else None
