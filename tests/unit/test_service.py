"""Unit tests for haproxy_configurator.service.manager and haproxy_configurator.service.status."""

from __future__ import annotations

import logging
import pathlib
from typing import Any

import pytest
import yaml

from haproxy_configurator.client.errors import (
    BadRequestError,
    ConflictError,
    DataPlaneRequestError,
    DataPlaneResponseError,
    NotFoundError,
    UnauthorizedError,
)
from haproxy_configurator.config.settings import InterfaceMapping
from haproxy_configurator.model.haproxy import Backend, Bind, Frontend, Server, Transaction
from haproxy_configurator.model.transaction import OP_ADD, OP_REMOVE, STATUS_FAILED
from haproxy_configurator.netplan.activation import NullActivator
from haproxy_configurator.netplan.coordinator import NetplanCoordinator
from haproxy_configurator.netplan.errors import ActivationError
from haproxy_configurator.netplan.journal import MemoryTransactionJournal
from haproxy_configurator.netplan.resolver import SubnetResolver
from haproxy_configurator.netplan.store import NetplanStore
from haproxy_configurator.service.manager import CommitOutcome, HAProxyManagerService
from haproxy_configurator.service.status import ServiceError, StatusCode, handle_dataplane_error

TX = "tx-0001"
MAPPINGS = [InterfaceMapping(interface="eth0", subnets=["192.168.1.0/24"])]


class FakeClient:
    """Records calls in order; individual methods can be made to raise."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.binds: dict[str, Bind] = {}
        self.fail: dict[str, Exception] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise self.fail[name]

    def commit_transaction(self, transaction_id: str) -> Transaction:
        self._record("commit_transaction", transaction_id)
        return Transaction(id=transaction_id, status="success", version=2)

    def close_transaction(self, transaction_id: str) -> str:
        self._record("close_transaction", transaction_id)
        return f"Transaction {transaction_id} closed"

    def add_backend(self, backend: Backend, transaction_id: str) -> Backend:
        self._record("add_backend", backend, transaction_id)
        return backend

    def delete_backend(self, name: str, transaction_id: str) -> None:
        self._record("delete_backend", name, transaction_id)

    def replace_backend(self, name: str, backend: Backend, transaction_id: str) -> Backend:
        self._record("replace_backend", name, backend, transaction_id)
        return backend

    def replace_frontend(self, name: str, frontend: Frontend, transaction_id: str) -> Frontend:
        self._record("replace_frontend", name, frontend, transaction_id)
        return frontend

    def replace_bind(self, frontend: str, bind: Bind, transaction_id: str) -> Bind:
        self._record("replace_bind", frontend, bind, transaction_id)
        return bind

    def add_frontend(self, frontend: Frontend, transaction_id: str) -> Frontend:
        self._record("add_frontend", frontend, transaction_id)
        return frontend

    def add_bind(self, frontend: str, bind: Bind, transaction_id: str) -> Bind:
        self._record("add_bind", frontend, bind, transaction_id)
        self.binds[bind.name] = bind
        return bind

    def get_bind(self, name: str, frontend: str, transaction_id: str = "") -> Bind:
        self._record("get_bind", name, frontend, transaction_id)
        return self.binds[name]

    def delete_bind(self, name: str, frontend: str, transaction_id: str) -> None:
        self._record("delete_bind", name, frontend, transaction_id)
        self.binds.pop(name, None)

    def replace_server(self, backend: str, server: Server, transaction_id: str) -> Server:
        self._record("replace_server", backend, server, transaction_id)
        return server

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class _FailingActivator:
    def apply(self) -> str:
        raise ActivationError(["netplan", "apply"], 1, "device busy")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def config_path(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "99-haproxy.yaml"


@pytest.fixture()
def coordinator(config_path: pathlib.Path) -> NetplanCoordinator:
    return NetplanCoordinator(
        resolver=SubnetResolver(MAPPINGS),
        store=NetplanStore(config_path),
        journal=MemoryTransactionJournal(),
        activator=NullActivator(),
    )


@pytest.fixture()
def service(client: FakeClient, coordinator: NetplanCoordinator) -> HAProxyManagerService:
    return HAProxyManagerService(client, coordinator)  # type: ignore[arg-type]


@pytest.fixture()
def plain_service(client: FakeClient) -> HAProxyManagerService:
    return HAProxyManagerService(client)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# status.py: error translation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    ("err", "code", "prefix"),
    [
        (NotFoundError(404, "u", "gone"), StatusCode.NOT_FOUND, "resource not found"),
        (UnauthorizedError(401, "u", "denied"), StatusCode.UNAUTHENTICATED, "authentication failed"),
        (BadRequestError(400, "u", "bad"), StatusCode.INVALID_ARGUMENT, "bad request"),
        (ConflictError(409, "u", "exists"), StatusCode.ALREADY_EXISTS, "conflict"),
        (DataPlaneResponseError(500, "u", "boom"), StatusCode.INTERNAL, "internal error"),
        (DataPlaneRequestError("u", OSError("refused")), StatusCode.INTERNAL, "internal error"),
    ],
)
def test_handle_dataplane_error(err: Exception, code: StatusCode, prefix: str) -> None:
    translated = handle_dataplane_error(err)  # type: ignore[arg-type]
    assert translated.code is code
    assert translated.message.startswith(prefix)


def test_status_code_values() -> None:
    assert StatusCode.OK == 0
    assert StatusCode.NOT_FOUND == 5
    assert StatusCode.UNAUTHENTICATED == 16


# ---------------------------------------------------------------------------
# Validation and normalisation
# ---------------------------------------------------------------------------

class TestValidation:
    def test_backend_default_mode(self, plain_service: HAProxyManagerService) -> None:
        created = plain_service.create_backend(Backend(name="web"), TX)
        assert created.mode == "tcp"

    def test_backend_invalid_mode(
        self, plain_service: HAProxyManagerService, client: FakeClient
    ) -> None:
        with pytest.raises(ServiceError) as exc_info:
            plain_service.create_backend(Backend(name="web", mode="udp"), TX)
        assert exc_info.value.code is StatusCode.INVALID_ARGUMENT
        assert client.calls == []

    def test_backend_invalid_algorithm(self, plain_service: HAProxyManagerService) -> None:
        with pytest.raises(ServiceError) as exc_info:
            plain_service.create_backend(Backend(name="web", balance_algorithm="leastfast"), TX)
        assert exc_info.value.code is StatusCode.INVALID_ARGUMENT

    def test_backend_required(self, plain_service: HAProxyManagerService) -> None:
        with pytest.raises(ServiceError, match="backend is required"):
            plain_service.create_backend(None, TX)

    def test_frontend_default_mode(self, plain_service: HAProxyManagerService) -> None:
        assert plain_service.create_frontend(Frontend(name="fe"), TX).mode == "tcp"

    def test_empty_name_rejected(
        self, plain_service: HAProxyManagerService, client: FakeClient
    ) -> None:
        with pytest.raises(ServiceError) as exc_info:
            plain_service.delete_backend("", TX)
        assert exc_info.value.code is StatusCode.INVALID_ARGUMENT
        assert client.calls == []

    def test_update_server_fills_name(
        self, plain_service: HAProxyManagerService, client: FakeClient
    ) -> None:
        updated = plain_service.update_server("web", "s1", Server(name="", address="10.0.0.1"), TX)
        assert updated.name == "s1"

    def test_update_backend_normalises_mode(
        self, plain_service: HAProxyManagerService, client: FakeClient
    ) -> None:
        updated = plain_service.update_backend(
            "web", Backend(name="web", balance_algorithm="roundrobin"), TX
        )
        assert updated.mode == "tcp"
        assert client.calls[0][0] == "replace_backend"

    def test_update_frontend_invalid_mode(
        self, plain_service: HAProxyManagerService, client: FakeClient
    ) -> None:
        with pytest.raises(ServiceError):
            plain_service.update_frontend("fe", Frontend(name="fe", mode="udp"), TX)
        assert client.calls == []

    def test_update_bind_does_not_stage(
        self,
        service: HAProxyManagerService,
        client: FakeClient,
        coordinator: NetplanCoordinator,
    ) -> None:
        service.update_bind("fe", Bind(name="b1", address="192.168.1.100"), TX)
        assert client.names() == ["replace_bind"]
        assert not coordinator.journal.exists(TX)

    def test_get_requires_name(self, plain_service: HAProxyManagerService) -> None:
        with pytest.raises(ServiceError, match="bind name is required"):
            plain_service.get_bind("fe", "")

    def test_client_errors_translated(
        self, plain_service: HAProxyManagerService, client: FakeClient
    ) -> None:
        client.fail["delete_backend"] = NotFoundError(404, "u", "backend web not found")
        with pytest.raises(ServiceError) as exc_info:
            plain_service.delete_backend("web", TX)
        assert exc_info.value.code is StatusCode.NOT_FOUND
        assert "backend web not found" in exc_info.value.message


# ---------------------------------------------------------------------------
# Binds with netplan staging
# ---------------------------------------------------------------------------

class TestBindStaging:
    def test_create_bind_stages_address(
        self,
        service: HAProxyManagerService,
        client: FakeClient,
        coordinator: NetplanCoordinator,
    ) -> None:
        service.create_bind("fe", Bind(name="b1", address="192.168.1.100", port=443), TX)

        assert client.names() == ["add_bind"]
        changes = coordinator.journal.load(TX).changes
        assert len(changes) == 1
        assert changes[0].operation == OP_ADD
        assert changes[0].interface == "eth0"
        assert changes[0].subnet_mask == "/24"
        assert changes[0].port == 443

    def test_unmapped_address_still_creates_bind(
        self,
        service: HAProxyManagerService,
        client: FakeClient,
        coordinator: NetplanCoordinator,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING):
            bind = service.create_bind("fe", Bind(name="b1", address="203.0.113.9", port=80), TX)

        assert bind.name == "b1"
        assert client.names() == ["add_bind"]
        assert not coordinator.journal.exists(TX)
        assert "203.0.113.9" in caplog.text

    def test_create_bind_requires_transaction(
        self, service: HAProxyManagerService, client: FakeClient
    ) -> None:
        with pytest.raises(ServiceError) as exc_info:
            service.create_bind("fe", Bind(name="b1", address="192.168.1.100"), "")
        assert exc_info.value.code is StatusCode.INVALID_ARGUMENT
        assert client.calls == []

    def test_create_bind_without_netplan(
        self, plain_service: HAProxyManagerService, client: FakeClient
    ) -> None:
        plain_service.create_bind("fe", Bind(name="b1", address="192.168.1.100"), TX)
        assert client.names() == ["add_bind"]

    def test_delete_bind_stages_removal(
        self,
        service: HAProxyManagerService,
        client: FakeClient,
        coordinator: NetplanCoordinator,
    ) -> None:
        client.binds["b1"] = Bind(name="b1", address="192.168.1.100", port=443)

        service.delete_bind("fe", "b1", TX)

        assert client.names() == ["get_bind", "delete_bind"]
        changes = coordinator.journal.load(TX).changes
        assert [(c.operation, c.ip_address) for c in changes] == [(OP_REMOVE, "192.168.1.100")]

    def test_delete_bind_unreadable_bind_still_deleted(
        self,
        service: HAProxyManagerService,
        client: FakeClient,
        coordinator: NetplanCoordinator,
    ) -> None:
        client.fail["get_bind"] = NotFoundError(404, "u", "no such bind")

        service.delete_bind("fe", "b1", TX)

        assert client.names() == ["get_bind", "delete_bind"]
        assert not coordinator.journal.exists(TX)


# ---------------------------------------------------------------------------
# Commit and close
# ---------------------------------------------------------------------------

class TestCommit:
    def test_commit_applies_staged_netplan_changes(
        self,
        service: HAProxyManagerService,
        coordinator: NetplanCoordinator,
        config_path: pathlib.Path,
    ) -> None:
        service.create_bind("fe", Bind(name="b1", address="192.168.1.100", port=443), TX)

        outcome = service.commit_transaction(TX)

        assert outcome.transaction.status == "success"
        assert outcome.netplan_error is None
        assert coordinator.tracked_addresses() == {"192.168.1.100": "eth0"}
        saved = yaml.safe_load(config_path.read_text())
        assert saved["network"]["ethernets"]["eth0"]["addresses"] == ["192.168.1.100/24"]

    def test_commit_without_staged_changes(
        self, service: HAProxyManagerService, config_path: pathlib.Path
    ) -> None:
        outcome = service.commit_transaction(TX)
        assert outcome == CommitOutcome(transaction=Transaction(id=TX, status="success", version=2))
        assert not config_path.exists()

    def test_netplan_failure_reported_not_raised(
        self,
        client: FakeClient,
        config_path: pathlib.Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        coordinator = NetplanCoordinator(
            SubnetResolver(MAPPINGS),
            NetplanStore(config_path),
            MemoryTransactionJournal(),
            _FailingActivator(),  # type: ignore[arg-type]
        )
        svc = HAProxyManagerService(client, coordinator)  # type: ignore[arg-type]
        svc.create_bind("fe", Bind(name="b1", address="192.168.1.100"), TX)

        with caplog.at_level(logging.WARNING):
            outcome = svc.commit_transaction(TX)

        assert outcome.transaction.status == "success"
        assert outcome.netplan_error is not None
        assert "device busy" in outcome.netplan_error
        assert coordinator.journal.load(TX).status == STATUS_FAILED
        assert "committed but netplan changes were not applied" in caplog.text

    def test_haproxy_commit_failure_skips_netplan(
        self,
        service: HAProxyManagerService,
        client: FakeClient,
        coordinator: NetplanCoordinator,
        config_path: pathlib.Path,
    ) -> None:
        service.create_bind("fe", Bind(name="b1", address="192.168.1.100"), TX)
        client.fail["commit_transaction"] = ConflictError(409, "u", "version mismatch")

        with pytest.raises(ServiceError) as exc_info:
            service.commit_transaction(TX)

        assert exc_info.value.code is StatusCode.ALREADY_EXISTS
        assert coordinator.journal.load(TX).is_pending
        assert not config_path.exists()

    def test_close_discards_staged_changes(
        self,
        service: HAProxyManagerService,
        client: FakeClient,
        coordinator: NetplanCoordinator,
    ) -> None:
        service.create_bind("fe", Bind(name="b1", address="192.168.1.100"), TX)

        message = service.close_transaction(TX)

        assert message == f"Transaction {TX} closed"
        assert coordinator.journal.load(TX).status == STATUS_FAILED
        assert coordinator.journal.list_pending() == []

    def test_commit_requires_transaction_id(self, service: HAProxyManagerService) -> None:
        with pytest.raises(ServiceError) as exc_info:
            service.commit_transaction("")
        assert exc_info.value.code is StatusCode.INVALID_ARGUMENT


# ---------------------------------------------------------------------------
# netplan_status
# ---------------------------------------------------------------------------

def test_netplan_status_disabled(plain_service: HAProxyManagerService) -> None:
    assert plain_service.netplan_status() == {
        "enabled": False,
        "message": "Netplan integration disabled",
    }


def test_netplan_status_enabled(
    service: HAProxyManagerService, config_path: pathlib.Path
) -> None:
    service.create_bind("fe", Bind(name="b1", address="192.168.1.100"), TX)
    service.commit_transaction(TX)
    status = service.netplan_status()
    assert status["enabled"] is True
    assert status["config_path"] == str(config_path)
    assert status["interface_mappings"] == 1
    assert status["tracked_addresses"] == {"192.168.1.100": "eth0"}
