"""Unit tests for haproxy_configurator.cli and haproxy_configurator.logging_setup."""

from __future__ import annotations

import json
import logging
import pathlib

import pytest

from haproxy_configurator import cli
from haproxy_configurator.logging_setup import configure_logging
from haproxy_configurator.model.transaction import OP_ADD, TransactionChange
from haproxy_configurator.netplan.activation import NetplanActivator
from haproxy_configurator.netplan.journal import FileTransactionJournal


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda development=False: None)


@pytest.fixture()
def config(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "haproxy:\n"
        "  api_url: http://localhost:5555\n"
        "netplan:\n"
        "  interface_mappings:\n"
        "    - interface: eth0\n"
        "      subnets: [192.168.1.0/24]\n"
        f"  netplan_config_path: {tmp_path / '99-haproxy.yaml'}\n"
        f"  transaction_dir: {tmp_path / 'tx'}\n"
    )
    return path


@pytest.fixture()
def journal(tmp_path: pathlib.Path, config: pathlib.Path) -> FileTransactionJournal:
    return FileTransactionJournal(tmp_path / "tx")


def _stage(journal: FileTransactionJournal, tx: str, ip: str = "192.168.1.100") -> None:
    journal.append(tx, TransactionChange(OP_ADD, ip, "eth0", subnet_mask="/24"))


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args(["show", "abc"])
    assert args.config == cli.DEFAULT_CONFIG_PATH
    assert args.development is False
    assert args.transaction_id == "abc"


def test_status(
    config: pathlib.Path, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli.main(["--config", str(config), "status"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["enabled"] is True
    assert out["interface_mappings"] == 1
    assert out["config_path"] == str(tmp_path / "99-haproxy.yaml")


def test_status_disabled(tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("haproxy:\n  api_url: http://localhost:5555\n")
    assert cli.main(["--config", str(path), "status"]) == 0
    assert json.loads(capsys.readouterr().out)["enabled"] is False


def test_other_commands_need_netplan(tmp_path: pathlib.Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("{}\n")
    assert cli.main(["--config", str(path), "pending"]) == 1


def test_missing_config(tmp_path: pathlib.Path) -> None:
    assert cli.main(["--config", str(tmp_path / "absent.yaml"), "status"]) == 1


def test_pending(
    config: pathlib.Path, journal: FileTransactionJournal, capsys: pytest.CaptureFixture[str]
) -> None:
    _stage(journal, "tx-b")
    _stage(journal, "tx-a")
    assert cli.main(["--config", str(config), "pending"]) == 0
    assert capsys.readouterr().out.split() == ["tx-a", "tx-b"]


def test_show(
    config: pathlib.Path, journal: FileTransactionJournal, capsys: pytest.CaptureFixture[str]
) -> None:
    _stage(journal, "tx1")
    assert cli.main(["--config", str(config), "show", "tx1"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "pending"
    assert out["changes"][0]["ip_address"] == "192.168.1.100"


def test_show_unknown(config: pathlib.Path) -> None:
    assert cli.main(["--config", str(config), "show", "ghost"]) == 1


def test_commit(
    config: pathlib.Path,
    journal: FileTransactionJournal,
    tmp_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(NetplanActivator, "apply", lambda self: "")
    _stage(journal, "tx1")

    assert cli.main(["--config", str(config), "commit", "tx1"]) == 0

    assert "1 change(s) applied" in capsys.readouterr().out
    assert journal.archived_path_for("tx1").is_file()
    assert "192.168.1.100/24" in (tmp_path / "99-haproxy.yaml").read_text()


def test_discard(
    config: pathlib.Path, journal: FileTransactionJournal, capsys: pytest.CaptureFixture[str]
) -> None:
    _stage(journal, "tx1")
    assert cli.main(["--config", str(config), "discard", "tx1"]) == 0
    assert "discarded tx1" in capsys.readouterr().out
    assert journal.load("tx1").status == "failed"
    assert cli.main(["--config", str(config), "discard", "tx1"]) == 1


# ---------------------------------------------------------------------------
# logging_setup.py
# ---------------------------------------------------------------------------

def _check_logging(development: bool) -> tuple[int, int, str]:
    root = logging.getLogger()
    urllib3 = logging.getLogger("urllib3")
    saved = (root.handlers[:], root.level, urllib3.level)
    try:
        configure_logging(development)
        formatter = root.handlers[0].formatter
        fmt = formatter._fmt if formatter is not None else ""
        return root.level, urllib3.level, str(fmt)
    finally:
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
        urllib3.setLevel(saved[2])


def test_configure_logging_production() -> None:
    level, urllib3_level, fmt = _check_logging(development=False)
    assert level == logging.INFO
    assert urllib3_level == logging.WARNING
    assert "level=%(levelname)s" in fmt


def test_configure_logging_development() -> None:
    level, urllib3_level, fmt = _check_logging(development=True)
    assert level == logging.DEBUG
    assert urllib3_level == logging.INFO
    assert "%(levelname)-8s" in fmt
