"""Load, mutate and persist the managed netplan document."""

from __future__ import annotations

import datetime
import logging
import os
import pathlib
import shutil
import tempfile
from collections.abc import Callable
from typing import Any

import yaml

from haproxy_configurator.model.netplan import EthernetSettings, NetplanDocument, VlanSettings
from haproxy_configurator.netplan.errors import NetplanIOError
from haproxy_configurator.netplan.naming import parse_interface_name, vlan_id_from_label

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT: str = "%Y%m%d-%H%M%S"

_FILE_MODE: int = 0o600

AddressMatcher = Callable[[str, str], bool]
"""``matcher(existing_address, ip) -> bool``; True when *existing_address* is *ip*."""


def address_text(entry: Any) -> str:
    """Return the ``ip/mask`` text of a netplan address entry.

    Netplan allows either a plain string or a single-key mapping carrying
    per-address options (``{"10.0.0.1/24": {"lifetime": 0}}``).
    """
    if isinstance(entry, dict) and len(entry) == 1:
        return str(next(iter(entry)))
    return str(entry)


def prefix_match(existing: str, ip_address: str) -> bool:
    """String-prefix comparison used for duplicate and removal checks.

    Note that ``10.0.0.1`` also matches ``10.0.0.100/24``. Use
    :func:`exact_match` where that matters.
    """
    return existing.startswith(ip_address)


def exact_match(existing: str, ip_address: str) -> bool:
    """True when the host part of *existing* (before ``/``) equals *ip_address*."""
    return existing.split("/", 1)[0] == ip_address


MATCHERS: dict[str, AddressMatcher] = {
    "prefix": prefix_match,
    "exact": exact_match,
}


def add_address(
    doc: NetplanDocument,
    interface_id: str,
    ip_address: str,
    mask: str,
    matcher: AddressMatcher = prefix_match,
) -> bool:
    """Add ``ip_address + mask`` to *interface_id* in *doc*.

    ``label@parent`` identifiers go to ``network.vlans[label]`` and the VLAN
    gets ``link: parent`` (and a numeric ``id`` taken from the label's
    trailing digits) when those are unset. Plain identifiers go to
    ``network.ethernets``.

    Raises:
        ValueError: If a VLAN has no ``id`` and its label has no trailing
            digits to take one from; *doc* is left unchanged.

    Returns:
        ``False`` if an address matching *ip_address* was already present
        (nothing changed), ``True`` otherwise.
    """
    name = parse_interface_name(interface_id)
    entry: EthernetSettings | VlanSettings
    if name.is_vlan:
        vlan = doc.vlans.get(name.vlan_label)
        vlan_id = vlan.id if vlan is not None else None
        if vlan_id is None:
            vlan_id = vlan_id_from_label(name.vlan_label)
        if vlan_id is None:
            raise ValueError(
                f"VLAN {name.vlan_label!r} has no id and none can be derived from its label"
            )
        if vlan is None:
            vlan = VlanSettings()
            doc.vlans[name.vlan_label] = vlan
        if not vlan.link:
            vlan.link = name.parent
        vlan.id = vlan_id
        entry = vlan
    else:
        entry = doc.ethernets.setdefault(name.name, EthernetSettings())

    for existing in entry.addresses:
        if matcher(address_text(existing), ip_address):
            logger.debug("Address %s already present on %s", ip_address, interface_id)
            return False

    entry.addresses.append(f"{ip_address}{mask}")
    logger.debug("Added %s%s to %s", ip_address, mask, interface_id)
    return True


def remove_address(
    doc: NetplanDocument,
    interface_id: str,
    ip_address: str,
    matcher: AddressMatcher = prefix_match,
) -> bool:
    """Remove every address of *interface_id* matching *ip_address*.

    An interface or VLAN whose last address this call removes is dropped
    from *doc* entirely. Entries that had nothing matching are left as they
    are, including ones with no addresses at all. Unknown interfaces are
    ignored.

    Returns:
        ``True`` if at least one address was removed.
    """
    name = parse_interface_name(interface_id)
    section: dict[str, Any] = doc.vlans if name.is_vlan else doc.ethernets
    entry = section.get(name.key)
    if entry is None:
        logger.debug("Interface %s not present; nothing to remove", interface_id)
        return False

    kept = [a for a in entry.addresses if not matcher(address_text(a), ip_address)]
    removed = len(kept) != len(entry.addresses)
    entry.addresses = kept
    if removed and not kept:
        del section[name.key]
        logger.debug("Pruned %s: no addresses left", interface_id)
    return removed


class NetplanStore:
    """File-backed netplan document with optional timestamped backups.

    Args:
        path: Netplan YAML file managed by this service.
        backup_enabled: Copy the existing file to
            ``<path>.backup-YYYYMMDD-HHMMSS`` before each overwrite.
        matcher: Address comparison used by :meth:`add_address` and
            :meth:`remove_address`.
    """

    def __init__(
        self,
        path: str | pathlib.Path,
        backup_enabled: bool = False,
        matcher: AddressMatcher = prefix_match,
    ) -> None:
        self.path: pathlib.Path = pathlib.Path(path)
        self.backup_enabled: bool = backup_enabled
        self.matcher: AddressMatcher = matcher

    def load(self) -> NetplanDocument:
        """Read the document; an absent or empty file yields an empty v2 document.

        Raises:
            NetplanIOError: If the file exists but cannot be read or parsed.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return NetplanDocument()
        except OSError as exc:
            raise NetplanIOError(f"failed to read netplan config {str(self.path)!r}: {exc}") from exc

        try:
            data = yaml.safe_load(text)
            if data is not None and not isinstance(data, dict):
                raise ValueError("document root must be a mapping")
            return NetplanDocument.from_dict(data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            raise NetplanIOError(f"failed to parse netplan config {str(self.path)!r}: {exc}") from exc

    def save(self, doc: NetplanDocument) -> None:
        """Back up the current file (if enabled) and write *doc* in its place.

        The document is written to a temporary file in the same directory and
        renamed over the target.

        Raises:
            NetplanIOError: If the backup or the write fails.
        """
        if self.backup_enabled:
            self.backup()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            text = yaml.safe_dump(doc.to_dict(), default_flow_style=False, sort_keys=False)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                os.chmod(tmp_name, _FILE_MODE)
                os.replace(tmp_name, self.path)
            except BaseException:
                pathlib.Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, yaml.YAMLError) as exc:
            raise NetplanIOError(f"failed to write netplan config {str(self.path)!r}: {exc}") from exc
        logger.debug("Saved netplan config to %s", self.path)

    def backup(self) -> pathlib.Path | None:
        """Copy the current file to a timestamped backup beside it.

        Returns:
            The backup path, or ``None`` when there is no file to back up.

        Raises:
            NetplanIOError: If the copy fails.
        """
        if not self.path.exists():
            return None
        stamp = datetime.datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
        backup_path = self.path.with_name(f"{self.path.name}.backup-{stamp}")
        try:
            shutil.copy2(self.path, backup_path)
        except OSError as exc:
            raise NetplanIOError(f"failed to create backup {str(backup_path)!r}: {exc}") from exc
        logger.info("Backed up netplan config to %s", backup_path)
        return backup_path

    def add_address(
        self, doc: NetplanDocument, interface_id: str, ip_address: str, mask: str
    ) -> bool:
        """:func:`add_address` using this store's matcher."""
        return add_address(doc, interface_id, ip_address, mask, self.matcher)

    def remove_address(self, doc: NetplanDocument, interface_id: str, ip_address: str) -> bool:
        """:func:`remove_address` using this store's matcher."""
        return remove_address(doc, interface_id, ip_address, self.matcher)
