import ipaddress

import pytest

from ovn_overlay.config import NetworkPut
from ovn_overlay.exceptions import ConfigError, ConflictError


def test_bridge_interfaces(registry, uplink):
    bridge = registry.load("lxdbr0")

    assert bridge.ipv4_interface() == ipaddress.ip_interface("198.51.100.1/24")
    assert bridge.ipv6_interface() == ipaddress.ip_interface("2001:db8:1::1/64")
    assert bridge.dhcpv4_subnet() == ipaddress.ip_network("198.51.100.0/24")


def test_bridge_dhcp_disabled(registry, add_network):
    add_network("lxdbr1", "bridge", {"ipv4.address": "192.0.2.1/24", "ipv4.dhcp": "false"})

    assert registry.load("lxdbr1").dhcpv4_subnet() is None


def test_bridge_rejects_static_mac_in_cluster(state, registry):
    state.clustered = True

    with pytest.raises(ConfigError, match="static bridge.hwaddr"):
        registry.validate("lxdbr1", "bridge", {"bridge.hwaddr": "0a:00:00:00:00:01"})

    registry.validate(
        "lxdbr1", "bridge", {"bridge.hwaddr": "0a:00:00:00:00:01", "bridge.mode": "fan"}
    )


def test_bridge_static_mac_allowed_standalone(registry):
    registry.validate("lxdbr1", "bridge", {"bridge.hwaddr": "0a:00:00:00:00:01"})


def test_bridge_in_use_by_overlay(registry, uplink, add_network):
    add_network("ovn1", "ovn", {"parent": "lxdbr0"})
    bridge = registry.load("lxdbr0")

    assert bridge.is_used()
    with pytest.raises(ConflictError):
        bridge.delete()
    with pytest.raises(ConflictError):
        bridge.rename("lxdbr9")


def test_bridge_update_and_rename(state, registry, uplink):
    bridge = registry.load("lxdbr0")

    bridge.update(NetworkPut(config={"ipv4.address": "198.51.100.1/24"}, description="uplink"))
    bridge.rename("lxdbr9")

    info = state.store.get_network("lxdbr9")
    assert info.config == {"ipv4.address": "198.51.100.1/24"}
    assert info.description == "uplink"
