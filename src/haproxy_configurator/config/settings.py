"""Unified configuration for haproxy-configurator.

A single YAML file carries the Data Plane API connection settings and the
optional netplan integration::

    haproxy:
      api_url: "http://localhost:5555"
      username: "admin"
      password: "admin"

    netplan:
      interface_mappings:
        - interface: "eth0"
          subnets: ["192.168.1.0/24", "10.0.0.0/24"]
        - interface: "vlan100@eth0"
          subnets: ["10.100.0.0/24"]
      netplan_config_path: "/etc/netplan/99-haproxy-configurator.yaml"
      backup_enabled: true
      transaction_dir: "/tmp/haproxy-netplan-transactions"

Netplan integration is enabled iff at least one interface mapping is present.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any

import yaml

from haproxy_configurator.errors import ConfigError
from haproxy_configurator.netplan.naming import parse_interface_name, vlan_id_from_label

logger = logging.getLogger(__name__)

DEFAULT_API_URL: str = "http://localhost:5555"
DEFAULT_API_USERNAME: str = "admin"
DEFAULT_API_PASSWORD: str = "admin"
DEFAULT_NETPLAN_CONFIG_PATH: str = "/etc/netplan/99-haproxy-configurator.yaml"
DEFAULT_TRANSACTION_DIR: str = "/tmp/haproxy-netplan-transactions"

ADDRESS_MATCH_MODES: tuple[str, ...] = ("prefix", "exact")


@dataclass
class InterfaceMapping:
    """Subnets whose addresses are assigned to one interface.

    Attributes:
        interface: Interface identifier; ``"label@parent"`` names a VLAN.
        subnets: CIDR subnets, searched in order.
    """

    interface: str
    subnets: list[str] = field(default_factory=list)


@dataclass
class HAProxySettings:
    """Connection settings for the HAProxy Data Plane API."""

    api_url: str = ""
    username: str = ""
    password: str = ""
    timeout_s: float = 30.0
    verify_tls: bool = True


@dataclass
class NetplanSettings:
    """Settings for the netplan address-sync integration.

    Attributes:
        interface_mappings: Ordered interface → subnets mappings.
        netplan_config_path: Netplan YAML document managed by this service.
        backup_enabled: Write a timestamped copy before each overwrite.
        transaction_dir: Directory holding the journal files.
        address_match: ``"prefix"`` (historical string-prefix matching) or
            ``"exact"`` for duplicate and removal checks.
        apply_timeout_s: Timeout for ``netplan generate``/``apply``;
            ``None`` waits indefinitely.
        netplan_command: Executable used for activation.
    """

    interface_mappings: list[InterfaceMapping] = field(default_factory=list)
    netplan_config_path: str = ""
    backup_enabled: bool = False
    transaction_dir: str = ""
    address_match: str = "prefix"
    apply_timeout_s: float | None = None
    netplan_command: str = "netplan"

    @property
    def enabled(self) -> bool:
        """True when at least one interface mapping is configured."""
        return bool(self.interface_mappings)


@dataclass
class Settings:
    """Top-level configuration: HAProxy connection plus optional netplan sync."""

    haproxy: HAProxySettings = field(default_factory=HAProxySettings)
    netplan: NetplanSettings = field(default_factory=NetplanSettings)

    def has_netplan_integration(self) -> bool:
        """True if netplan integration is configured."""
        return self.netplan.enabled

    def validate(self) -> None:
        """Validate the settings and fill netplan path defaults.

        Raises:
            ConfigError: On the first invalid field.
        """
        if not self.haproxy.api_url:
            raise ConfigError("HAProxy API URL is required")
        if not self.haproxy.username:
            raise ConfigError("HAProxy API username is required")
        if not self.haproxy.password:
            raise ConfigError("HAProxy API password is required")

        if not self.netplan.enabled:
            return

        if not self.netplan.netplan_config_path:
            self.netplan.netplan_config_path = DEFAULT_NETPLAN_CONFIG_PATH
        if not self.netplan.transaction_dir:
            self.netplan.transaction_dir = DEFAULT_TRANSACTION_DIR
        if self.netplan.address_match not in ADDRESS_MATCH_MODES:
            raise ConfigError(
                f"address_match must be one of {ADDRESS_MATCH_MODES}, "
                f"got {self.netplan.address_match!r}"
            )

        for i, mapping in enumerate(self.netplan.interface_mappings):
            if not mapping.interface:
                raise ConfigError(f"interface name is required for mapping {i}")
            name = parse_interface_name(mapping.interface)
            if name.is_vlan and vlan_id_from_label(name.vlan_label) is None:
                logger.warning(
                    "VLAN label %r has no trailing digits; vlans.%s must already "
                    "declare an id in the netplan file",
                    name.vlan_label,
                    name.vlan_label,
                )
            if not mapping.subnets:
                raise ConfigError(
                    f"at least one subnet is required for interface {mapping.interface}"
                )
            for j, subnet in enumerate(mapping.subnets):
                try:
                    ipaddress.ip_network(subnet, strict=False)
                except ValueError as exc:
                    raise ConfigError(
                        f"invalid CIDR {subnet} for interface {mapping.interface} "
                        f"at index {j}: {exc}"
                    ) from exc


def load_settings(path: str | pathlib.Path) -> Settings:
    """Load and validate the unified configuration file.

    HAProxy connection fields missing from the file fall back to the
    ``HAPROXY_API_URL``, ``HAPROXY_API_USERNAME`` and ``HAPROXY_API_PASSWORD``
    environment variables, then to the built-in defaults.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    if not path:
        raise ConfigError("config path is required")
    config_file = pathlib.Path(path)
    try:
        text = config_file.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"failed to read config file {str(config_file)!r}: {exc}") from exc
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config file {str(config_file)!r}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {str(config_file)!r} must contain a mapping")

    settings = settings_from_dict(data)
    settings.validate()
    logger.debug(
        "Loaded settings from %s (netplan integration: %s)",
        config_file,
        settings.has_netplan_integration(),
    )
    return settings


def settings_from_dict(data: dict[str, Any]) -> Settings:
    """Build :class:`Settings` from a parsed YAML mapping (no validation)."""
    haproxy_data = _section(data, "haproxy")
    netplan_data = _section(data, "netplan")

    haproxy = HAProxySettings(
        api_url=str(haproxy_data.get("api_url") or _env("HAPROXY_API_URL", DEFAULT_API_URL)),
        username=str(
            haproxy_data.get("username") or _env("HAPROXY_API_USERNAME", DEFAULT_API_USERNAME)
        ),
        password=str(
            haproxy_data.get("password") or _env("HAPROXY_API_PASSWORD", DEFAULT_API_PASSWORD)
        ),
        timeout_s=_number(haproxy_data.get("timeout_s", 30.0), "haproxy.timeout_s"),
        verify_tls=_flag(haproxy_data.get("verify_tls", True), "haproxy.verify_tls"),
    )

    mappings: list[InterfaceMapping] = []
    for raw in netplan_data.get("interface_mappings") or []:
        if not isinstance(raw, dict):
            raise ConfigError(f"interface mapping must be a mapping, got {raw!r}")
        mappings.append(
            InterfaceMapping(
                interface=str(raw.get("interface") or ""),
                subnets=[str(s) for s in raw.get("subnets") or []],
            )
        )

    timeout = netplan_data.get("apply_timeout_s")
    netplan = NetplanSettings(
        interface_mappings=mappings,
        netplan_config_path=str(netplan_data.get("netplan_config_path") or ""),
        backup_enabled=_flag(netplan_data.get("backup_enabled", False), "netplan.backup_enabled"),
        transaction_dir=str(netplan_data.get("transaction_dir") or ""),
        address_match=str(netplan_data.get("address_match") or "prefix"),
        apply_timeout_s=(
            _number(timeout, "netplan.apply_timeout_s") if timeout is not None else None
        ),
        netplan_command=str(netplan_data.get("netplan_command") or "netplan"),
    )
    return Settings(haproxy=haproxy, netplan=netplan)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key!r} section must be a mapping")
    return value


def _env(key: str, default: str) -> str:
    return os.environ.get(key) or default


_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


def _flag(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
