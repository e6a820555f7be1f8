"""Resolve an IP address to the interface and subnet mask it belongs to."""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterator, Sequence

from haproxy_configurator.config.settings import InterfaceMapping
from haproxy_configurator.netplan.errors import InterfaceNotFoundError, InvalidAddressError

logger = logging.getLogger(__name__)

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network
IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def parse_ip(ip_address: str) -> IPAddress:
    """Parse *ip_address*, raising :exc:`InvalidAddressError` if empty or malformed."""
    if not ip_address:
        raise InvalidAddressError(ip_address)
    try:
        return ipaddress.ip_address(ip_address)
    except ValueError as exc:
        raise InvalidAddressError(ip_address) from exc


class SubnetResolver:
    """First-match lookup over an ordered list of interface mappings.

    Mappings are searched in declaration order, and the subnets of each
    mapping in their declared order. The first subnet containing the address
    wins. Unparseable subnets are skipped.

    Args:
        mappings: Interface → subnets mappings, usually from
            :class:`~haproxy_configurator.config.settings.NetplanSettings`.
    """

    def __init__(self, mappings: Sequence[InterfaceMapping]) -> None:
        self.mapping_count: int = len(mappings)
        self._networks: list[tuple[str, IPNetwork]] = []
        for mapping in mappings:
            for subnet in mapping.subnets:
                try:
                    network = ipaddress.ip_network(subnet, strict=False)
                except ValueError:
                    logger.warning(
                        "Skipping invalid subnet %r for interface %s", subnet, mapping.interface
                    )
                    continue
                self._networks.append((mapping.interface, network))

    def resolve(self, ip_address: str) -> tuple[str, str]:
        """Return ``(interface, "/<prefixlen>")`` for *ip_address*.

        Raises:
            InvalidAddressError: If *ip_address* is empty or malformed.
            InterfaceNotFoundError: If no configured subnet contains it.
        """
        for interface, network in self._matches(ip_address):
            return interface, f"/{network.prefixlen}"
        raise InterfaceNotFoundError(ip_address)

    def resolve_interface(self, ip_address: str) -> str:
        """Return the interface identifier whose subnet contains *ip_address*."""
        return self.resolve(ip_address)[0]

    def resolve_subnet_mask(self, ip_address: str) -> str:
        """Return the CIDR suffix (e.g. ``"/24"``) of the subnet containing *ip_address*.

        On no match the raised :exc:`InterfaceNotFoundError` carries
        ``fallback_mask == "/32"``; callers performing an add use it.
        """
        return self.resolve(ip_address)[1]

    def _matches(self, ip_address: str) -> Iterator[tuple[str, IPNetwork]]:
        ip = parse_ip(ip_address)
        for interface, network in self._networks:
            if ip.version == network.version and ip in network:
                yield interface, network
