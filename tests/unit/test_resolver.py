"""Unit tests for haproxy_configurator.netplan.resolver."""

from __future__ import annotations

import pytest

from haproxy_configurator.config.settings import InterfaceMapping
from haproxy_configurator.netplan.errors import InterfaceNotFoundError, InvalidAddressError
from haproxy_configurator.netplan.resolver import SubnetResolver

MAPPINGS = [
    InterfaceMapping(interface="eth0", subnets=["192.168.1.0/24", "10.0.0.0/8"]),
    InterfaceMapping(interface="eth1", subnets=["172.16.0.0/16"]),
    InterfaceMapping(interface="vlan100@eth0", subnets=["10.100.0.0/24"]),
]


@pytest.fixture()
def resolver() -> SubnetResolver:
    return SubnetResolver(MAPPINGS)


# ---------------------------------------------------------------------------
# resolve_interface
# ---------------------------------------------------------------------------

class TestResolveInterface:
    def test_first_subnet_of_first_mapping(self, resolver: SubnetResolver) -> None:
        assert resolver.resolve_interface("192.168.1.100") == "eth0"

    def test_second_subnet_of_mapping(self, resolver: SubnetResolver) -> None:
        assert resolver.resolve_interface("10.5.5.5") == "eth0"

    def test_second_mapping(self, resolver: SubnetResolver) -> None:
        assert resolver.resolve_interface("172.16.3.4") == "eth1"

    def test_first_match_wins_over_more_specific_later_mapping(
        self, resolver: SubnetResolver
    ) -> None:
        # 10.100.0.0/24 is inside eth0's 10.0.0.0/8, which is declared first
        assert resolver.resolve_interface("10.100.0.7") == "eth0"

    def test_declaration_order_decides(self) -> None:
        r = SubnetResolver(
            [
                InterfaceMapping(interface="vlan100@eth0", subnets=["10.100.0.0/24"]),
                InterfaceMapping(interface="eth0", subnets=["10.0.0.0/8"]),
            ]
        )
        assert r.resolve_interface("10.100.0.7") == "vlan100@eth0"

    def test_no_match_raises_resolution_error(self, resolver: SubnetResolver) -> None:
        with pytest.raises(InterfaceNotFoundError) as exc_info:
            resolver.resolve_interface("203.0.113.1")
        assert exc_info.value.ip_address == "203.0.113.1"

    def test_empty_ip_is_validation_error(self, resolver: SubnetResolver) -> None:
        with pytest.raises(InvalidAddressError):
            resolver.resolve_interface("")

    def test_malformed_ip_is_validation_error(self, resolver: SubnetResolver) -> None:
        with pytest.raises(InvalidAddressError):
            resolver.resolve_interface("192.168.1.999")

    def test_validation_error_distinct_from_not_found(self) -> None:
        assert not issubclass(InvalidAddressError, InterfaceNotFoundError)
        assert not issubclass(InterfaceNotFoundError, InvalidAddressError)

    def test_invalid_subnet_skipped(self) -> None:
        r = SubnetResolver(
            [InterfaceMapping(interface="eth9", subnets=["not-a-cidr", "198.51.100.0/24"])]
        )
        assert r.resolve_interface("198.51.100.1") == "eth9"

    def test_ipv6(self) -> None:
        r = SubnetResolver(
            [
                InterfaceMapping(interface="eth0", subnets=["10.0.0.0/8"]),
                InterfaceMapping(interface="eth1", subnets=["2001:db8::/32"]),
            ]
        )
        assert r.resolve_interface("2001:db8::10") == "eth1"


# ---------------------------------------------------------------------------
# resolve_subnet_mask
# ---------------------------------------------------------------------------

class TestResolveSubnetMask:
    def test_exact_prefix_length(self, resolver: SubnetResolver) -> None:
        assert resolver.resolve_subnet_mask("192.168.1.100") == "/24"

    def test_second_subnet_prefix(self, resolver: SubnetResolver) -> None:
        assert resolver.resolve_subnet_mask("10.5.5.5") == "/8"

    def test_other_mapping_prefix(self, resolver: SubnetResolver) -> None:
        assert resolver.resolve_subnet_mask("172.16.0.1") == "/16"

    def test_unmatched_carries_fallback_mask(self, resolver: SubnetResolver) -> None:
        with pytest.raises(InterfaceNotFoundError) as exc_info:
            resolver.resolve_subnet_mask("203.0.113.1")
        assert exc_info.value.fallback_mask == "/32"

    def test_resolve_returns_pair(self, resolver: SubnetResolver) -> None:
        assert resolver.resolve("172.16.9.9") == ("eth1", "/16")

    def test_mapping_count(self, resolver: SubnetResolver) -> None:
        assert resolver.mapping_count == 3
