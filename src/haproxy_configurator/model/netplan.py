"""Typed model for the netplan YAML document.

Only the fields this project reads or writes are modelled explicitly. Every
other key found while loading is kept in the owning object's ``extra`` bag
(insertion-ordered) and emitted again after the known fields on save, so a
load/save cycle never drops configuration written by someone else.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, TypeVar

_T = TypeVar("_T", bound="_FieldBag")


def _key(f: Any) -> str:
    return str(f.metadata.get("yaml", f.name))


@dataclass
class _FieldBag:
    """Known fields plus a residual ordered mapping of unrecognised keys."""

    extra: dict[str, Any] = field(default_factory=dict)

    _RESIDUAL: ClassVar[str] = "extra"

    @classmethod
    def _known(cls) -> list[Any]:
        return [f for f in fields(cls) if f.name != cls._RESIDUAL]

    @classmethod
    def from_dict(cls: type[_T], data: dict[str, Any] | None) -> _T:
        """Build an instance from a parsed YAML mapping."""
        by_key = {_key(f): f.name for f in cls._known()}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in (data or {}).items():
            attr = by_key.get(str(key))
            if attr is None:
                extra[key] = value
            else:
                kwargs[attr] = list(value) if isinstance(value, list) else value
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Return a YAML-ready mapping: known fields, then the residual bag.

        ``None`` and empty-list known fields are omitted.
        """
        out: dict[str, Any] = {}
        for f in self._known():
            value = getattr(self, f.name)
            if value is None or value == []:
                continue
            out[_key(f)] = value
        for key, value in self.extra.items():
            out.setdefault(key, value)
        return out


@dataclass
class EthernetSettings(_FieldBag):
    """Settings for one entry of ``network.ethernets``."""

    addresses: list[Any] = field(default_factory=list)
    dhcp4: bool | None = None
    dhcp6: bool | None = None
    gateway4: str | None = None
    gateway6: str | None = None
    mtu: int | None = None
    macaddress: str | None = None
    match: dict[str, Any] | None = None
    set_name: str | None = field(default=None, metadata={"yaml": "set-name"})
    optional: bool | None = None
    routes: list[Any] = field(default_factory=list)
    nameservers: dict[str, Any] | None = None


@dataclass
class VlanSettings(_FieldBag):
    """Settings for one entry of ``network.vlans``."""

    id: int | None = None
    link: str | None = None
    addresses: list[Any] = field(default_factory=list)
    dhcp4: bool | None = None
    dhcp6: bool | None = None
    gateway4: str | None = None
    mtu: int | None = None
    routes: list[Any] = field(default_factory=list)
    nameservers: dict[str, Any] | None = None


@dataclass
class NetplanDocument:
    """A netplan configuration file.

    Attributes:
        version: Netplan schema version (always 2 in practice).
        renderer: ``networkd`` / ``NetworkManager`` or ``None`` if unset.
        ethernets: Physical interfaces keyed by name.
        vlans: VLAN sub-interfaces keyed by label.
        extra: Unrecognised keys under ``network:`` (``bonds``, ``bridges``...).
        root_extra: Unrecognised keys beside ``network:``.
    """

    version: int = 2
    renderer: str | None = None
    ethernets: dict[str, EthernetSettings] = field(default_factory=dict)
    vlans: dict[str, VlanSettings] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    root_extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> NetplanDocument:
        """Build a document from the parsed YAML root mapping.

        Raises:
            ValueError: If ``network`` or one of its sections is not a mapping.
        """
        data = dict(data or {})
        network = data.pop("network", None) or {}
        if not isinstance(network, dict):
            raise ValueError("'network' must be a mapping")
        network = dict(network)

        version = network.pop("version", 2)
        renderer = network.pop("renderer", None)
        ethernets_raw = network.pop("ethernets", None) or {}
        vlans_raw = network.pop("vlans", None) or {}
        if not isinstance(ethernets_raw, dict) or not isinstance(vlans_raw, dict):
            raise ValueError("'ethernets' and 'vlans' must be mappings")

        return cls(
            version=int(version),
            renderer=renderer,
            ethernets={
                str(name): EthernetSettings.from_dict(cfg)
                for name, cfg in ethernets_raw.items()
            },
            vlans={str(name): VlanSettings.from_dict(cfg) for name, cfg in vlans_raw.items()},
            extra=network,
            root_extra=data,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the YAML-ready root mapping."""
        network: dict[str, Any] = {"version": self.version}
        if self.renderer is not None:
            network["renderer"] = self.renderer
        if self.ethernets:
            network["ethernets"] = {
                name: iface.to_dict() for name, iface in self.ethernets.items()
            }
        if self.vlans:
            network["vlans"] = {name: vlan.to_dict() for name, vlan in self.vlans.items()}
        for key, value in self.extra.items():
            network.setdefault(key, value)

        out: dict[str, Any] = {"network": network}
        for key, value in self.root_extra.items():
            out.setdefault(key, value)
        return out
