"""HAProxy manager service: request validation, client calls, netplan sync.

:class:`HAProxyManagerService` is the layer an RPC front end calls. It
validates arguments, forwards to :class:`DataPlaneClient`, translates
client errors into :class:`ServiceError`, and, when a
:class:`NetplanCoordinator` is configured, keeps bind addresses assigned on
the host.

Ordering for a commit: the HAProxy transaction is committed first and the
netplan transaction only afterwards. A netplan failure at that point is
logged and reported in :attr:`CommitOutcome.netplan_error`; the HAProxy
commit stands.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from dataclasses import dataclass, replace
from typing import Any

from haproxy_configurator.client.dataplane import DataPlaneClient
from haproxy_configurator.client.errors import DataPlaneError
from haproxy_configurator.config.settings import Settings
from haproxy_configurator.model.haproxy import Backend, Bind, Frontend, Server, Transaction
from haproxy_configurator.netplan.coordinator import NetplanCoordinator
from haproxy_configurator.netplan.errors import NetplanError
from haproxy_configurator.service.status import handle_dataplane_error, invalid_argument
from haproxy_configurator.vendor.haproxy.mappings import (
    BALANCE_ALGORITHMS,
    DEFAULT_PROXY_MODE,
    PROXY_MODES,
)

logger = logging.getLogger(__name__)


@dataclass
class CommitOutcome:
    """Result of :meth:`HAProxyManagerService.commit_transaction`.

    Attributes:
        transaction: The committed HAProxy transaction.
        netplan_error: Why the netplan side did not commit, or ``None``.
    """

    transaction: Transaction
    netplan_error: str | None = None


@contextlib.contextmanager
def _dataplane_errors() -> Iterator[None]:
    try:
        yield
    except DataPlaneError as exc:
        raise handle_dataplane_error(exc) from exc


def _require(value: object, message: str) -> None:
    if not value:
        raise invalid_argument(message)


class HAProxyManagerService:
    """Backend/frontend/bind/server management over HAProxy transactions.

    Args:
        client: Data Plane API client.
        netplan: Optional coordinator; ``None`` disables address sync.
    """

    def __init__(
        self,
        client: DataPlaneClient,
        netplan: NetplanCoordinator | None = None,
    ) -> None:
        self.client = client
        self.netplan = netplan

    @classmethod
    def from_settings(cls, settings: Settings) -> HAProxyManagerService:
        client = DataPlaneClient(
            base_url=settings.haproxy.api_url,
            username=settings.haproxy.username,
            password=settings.haproxy.password,
            timeout_s=settings.haproxy.timeout_s,
            verify_tls=settings.haproxy.verify_tls,
        )
        netplan = None
        if settings.has_netplan_integration():
            netplan = NetplanCoordinator.from_settings(settings.netplan)
        else:
            logger.info("Netplan integration disabled (no interface mappings configured)")
        return cls(client, netplan)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def get_version(self) -> int:
        with _dataplane_errors():
            return self.client.get_version()

    def create_transaction(self, version: int) -> Transaction:
        with _dataplane_errors():
            return self.client.create_transaction(version)

    def get_transaction(self, transaction_id: str) -> Transaction:
        _require(transaction_id, "transaction ID is required")
        with _dataplane_errors():
            return self.client.get_transaction(transaction_id)

    def commit_transaction(self, transaction_id: str) -> CommitOutcome:
        """Commit the HAProxy transaction, then the matching netplan transaction.

        Raises:
            ServiceError: If the HAProxy commit fails. Netplan failures never
                raise; they are returned in :attr:`CommitOutcome.netplan_error`.
        """
        _require(transaction_id, "transaction ID is required")
        logger.info("Committing transaction %s", transaction_id)
        with _dataplane_errors():
            transaction = self.client.commit_transaction(transaction_id)

        if self.netplan is None:
            return CommitOutcome(transaction=transaction)

        try:
            if not self.netplan.journal.exists(transaction_id):
                logger.debug("No netplan changes staged for transaction %s", transaction_id)
                return CommitOutcome(transaction=transaction)
            self.netplan.commit(transaction_id)
        except NetplanError as exc:
            logger.warning(
                "HAProxy transaction %s committed but netplan changes were not applied: %s",
                transaction_id,
                exc,
            )
            return CommitOutcome(transaction=transaction, netplan_error=str(exc))
        return CommitOutcome(transaction=transaction)

    def close_transaction(self, transaction_id: str) -> str:
        """Close the HAProxy transaction and discard its staged netplan changes."""
        _require(transaction_id, "transaction ID is required")
        with _dataplane_errors():
            message = self.client.close_transaction(transaction_id)
        if self.netplan is not None:
            try:
                self.netplan.discard(transaction_id)
            except NetplanError as exc:
                logger.warning(
                    "Could not discard netplan transaction %s: %s", transaction_id, exc
                )
        return message

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    def create_backend(self, backend: Backend | None, transaction_id: str) -> Backend:
        if backend is None:
            raise invalid_argument("backend is required")
        backend = self._normalise_backend(backend)
        with _dataplane_errors():
            return self.client.add_backend(backend, transaction_id)

    def get_backend(self, name: str, transaction_id: str = "") -> Backend:
        _require(name, "backend name is required")
        with _dataplane_errors():
            return self.client.get_backend(name, transaction_id)

    def list_backends(self, transaction_id: str = "") -> list[Backend]:
        with _dataplane_errors():
            return self.client.list_backends(transaction_id)

    def update_backend(self, name: str, backend: Backend | None, transaction_id: str) -> Backend:
        _require(name, "backend name is required")
        if backend is None:
            raise invalid_argument("backend is required")
        backend = self._normalise_backend(backend)
        with _dataplane_errors():
            return self.client.replace_backend(name, backend, transaction_id)

    def delete_backend(self, name: str, transaction_id: str) -> None:
        _require(name, "backend name is required")
        with _dataplane_errors():
            self.client.delete_backend(name, transaction_id)

    # ------------------------------------------------------------------
    # Frontends
    # ------------------------------------------------------------------

    def create_frontend(self, frontend: Frontend | None, transaction_id: str) -> Frontend:
        if frontend is None:
            raise invalid_argument("frontend is required")
        frontend = replace(frontend, mode=_proxy_mode(frontend.mode))
        with _dataplane_errors():
            return self.client.add_frontend(frontend, transaction_id)

    def get_frontend(self, name: str, transaction_id: str = "") -> Frontend:
        _require(name, "frontend name is required")
        with _dataplane_errors():
            return self.client.get_frontend(name, transaction_id)

    def list_frontends(self, transaction_id: str = "") -> list[Frontend]:
        with _dataplane_errors():
            return self.client.list_frontends(transaction_id)

    def update_frontend(
        self, name: str, frontend: Frontend | None, transaction_id: str
    ) -> Frontend:
        _require(name, "frontend name is required")
        if frontend is None:
            raise invalid_argument("frontend is required")
        frontend = replace(frontend, mode=_proxy_mode(frontend.mode))
        with _dataplane_errors():
            return self.client.replace_frontend(name, frontend, transaction_id)

    def delete_frontend(self, name: str, transaction_id: str) -> None:
        _require(name, "frontend name is required")
        with _dataplane_errors():
            self.client.delete_frontend(name, transaction_id)

    # ------------------------------------------------------------------
    # Binds
    # ------------------------------------------------------------------

    def create_bind(self, frontend_name: str, bind: Bind | None, transaction_id: str) -> Bind:
        """Create a bind; with netplan enabled, also stage its address.

        A staging failure is logged and does not prevent the bind from being
        created.
        """
        _require(frontend_name, "frontend name is required")
        if bind is None:
            raise invalid_argument("bind is required")

        if self.netplan is not None:
            _require(transaction_id, "transaction ID is required")
            if bind.address:
                logger.info(
                    "Creating bind %s on %s:%s in frontend %s (transaction %s)",
                    bind.name,
                    bind.address,
                    bind.port,
                    frontend_name,
                    transaction_id,
                )
                try:
                    self.netplan.stage_add(transaction_id, bind.address, bind.port or 0)
                except NetplanError as exc:
                    logger.warning(
                        "Failed to stage address %s in netplan transaction %s, "
                        "continuing without netplan integration: %s",
                        bind.address,
                        transaction_id,
                        exc,
                    )

        with _dataplane_errors():
            return self.client.add_bind(frontend_name, bind, transaction_id)

    def get_bind(self, frontend_name: str, name: str, transaction_id: str = "") -> Bind:
        _require(frontend_name, "frontend name is required")
        _require(name, "bind name is required")
        with _dataplane_errors():
            return self.client.get_bind(name, frontend_name, transaction_id)

    def list_binds(self, frontend_name: str, transaction_id: str = "") -> list[Bind]:
        _require(frontend_name, "frontend name is required")
        with _dataplane_errors():
            return self.client.list_binds(frontend_name, transaction_id)

    def update_bind(self, frontend_name: str, bind: Bind | None, transaction_id: str) -> Bind:
        _require(frontend_name, "frontend name is required")
        if bind is None:
            raise invalid_argument("bind is required")
        with _dataplane_errors():
            return self.client.replace_bind(frontend_name, bind, transaction_id)

    def delete_bind(self, frontend_name: str, name: str, transaction_id: str) -> None:
        """Delete a bind; with netplan enabled, also stage removal of its address.

        The bind is read first to learn its address. Failing to read it or to
        stage the removal is logged and does not fail the deletion.
        """
        _require(frontend_name, "frontend name is required")
        _require(name, "bind name is required")

        address = ""
        if self.netplan is not None:
            _require(transaction_id, "transaction ID is required")
            try:
                address = self.client.get_bind(name, frontend_name, transaction_id).address or ""
            except DataPlaneError as exc:
                logger.warning("Could not read address of bind %s: %s", name, exc)

        with _dataplane_errors():
            self.client.delete_bind(name, frontend_name, transaction_id)

        if self.netplan is not None and address:
            try:
                self.netplan.stage_remove(transaction_id, address)
            except NetplanError as exc:
                logger.warning(
                    "Failed to stage removal of %s in netplan transaction %s: %s",
                    address,
                    transaction_id,
                    exc,
                )

    # ------------------------------------------------------------------
    # Servers
    # ------------------------------------------------------------------

    def create_server(self, backend_name: str, server: Server | None, transaction_id: str) -> Server:
        _require(backend_name, "backend name is required")
        if server is None:
            raise invalid_argument("server is required")
        with _dataplane_errors():
            return self.client.add_server(backend_name, server, transaction_id)

    def get_server(self, backend_name: str, name: str, transaction_id: str = "") -> Server:
        _require(backend_name, "backend name is required")
        _require(name, "server name is required")
        with _dataplane_errors():
            return self.client.get_server(name, backend_name, transaction_id)

    def list_servers(self, backend_name: str, transaction_id: str = "") -> list[Server]:
        _require(backend_name, "backend name is required")
        with _dataplane_errors():
            return self.client.list_servers(backend_name, transaction_id)

    def update_server(
        self, backend_name: str, name: str, server: Server | None, transaction_id: str
    ) -> Server:
        _require(backend_name, "backend name is required")
        _require(name, "server name is required")
        if server is None:
            raise invalid_argument("server is required")
        if not server.name:
            server = replace(server, name=name)
        with _dataplane_errors():
            return self.client.replace_server(backend_name, server, transaction_id)

    def delete_server(self, backend_name: str, name: str, transaction_id: str) -> None:
        _require(backend_name, "backend name is required")
        _require(name, "server name is required")
        with _dataplane_errors():
            self.client.delete_server(name, backend_name, transaction_id)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def netplan_status(self) -> dict[str, Any]:
        """Netplan integration status, including tracked addresses when enabled."""
        if self.netplan is None:
            return {"enabled": False, "message": "Netplan integration disabled"}
        return self.netplan.status()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _normalise_backend(backend: Backend) -> Backend:
        algorithm = backend.balance_algorithm
        if algorithm is not None and algorithm not in BALANCE_ALGORITHMS:
            raise invalid_argument(f"unsupported balance algorithm: {algorithm!r}")
        return replace(backend, mode=_proxy_mode(backend.mode))


def _proxy_mode(mode: str | None) -> str:
    if not mode:
        return DEFAULT_PROXY_MODE
    if mode not in PROXY_MODES:
        raise invalid_argument(f"unsupported proxy mode: {mode!r}")
    return mode
