"""Interface identifier parsing (``label@parent`` VLAN notation)."""

from __future__ import annotations

import re
from dataclasses import dataclass

VLAN_SEPARATOR: str = "@"

_VLAN_ID_RE = re.compile(r"(\d+)$")


@dataclass(frozen=True)
class InterfaceName:
    """A parsed interface identifier.

    Attributes:
        name: The identifier as given.
        is_vlan: True for ``label@parent``.
        vlan_label: VLAN key in the netplan ``vlans`` section (VLANs only).
        parent: Parent link for the VLAN (VLANs only).
    """

    name: str
    is_vlan: bool = False
    vlan_label: str = ""
    parent: str = ""

    @property
    def key(self) -> str:
        """Key of this interface in its netplan section."""
        return self.vlan_label if self.is_vlan else self.name


def parse_interface_name(name: str) -> InterfaceName:
    """Split *name* into VLAN label and parent when it has the form ``label@parent``.

    Exactly one ``@`` with non-empty text on both sides denotes a VLAN.
    Anything else, including names with several ``@``, is a plain interface
    named literally.
    """
    parts = name.split(VLAN_SEPARATOR)
    if len(parts) == 2 and parts[0] and parts[1]:
        return InterfaceName(name=name, is_vlan=True, vlan_label=parts[0], parent=parts[1])
    return InterfaceName(name=name)


def vlan_id_from_label(label: str) -> int | None:
    """Numeric VLAN id from the trailing digits of *label* (``vlan100`` -> 100), else ``None``."""
    digits = _VLAN_ID_RE.search(label)
    return int(digits.group(1)) if digits else None
