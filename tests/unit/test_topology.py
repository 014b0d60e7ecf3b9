import pytest

from ovn_overlay.config import VOLATILE_PARENT_IPV4, VOLATILE_PARENT_IPV6, NetworkStatus
from ovn_overlay.events import NetworkDelete, NetworkUpsert
from ovn_overlay.exceptions import NorthboundError
from ovn_overlay.identity import stable_router_mac
from ovn_overlay.topology import bridge_mtu, dns_search_list, router_int_port_ipv4

UPLINK_V4 = {
    "ipv4.address": "198.51.100.1/24",
    "ipv4.ovn.ranges": "198.51.100.10-198.51.100.20",
}
NETWORK_CONFIG = {"parent": "lxdbr0", "ipv4.address": "192.0.2.0/24", "ipv6.address": "none"}


@pytest.fixture
def seeded(add_network):
    """Uplink with two overlay networks holding .10 and .11; next id is 7."""

    add_network("lxdbr0", "bridge", dict(UPLINK_V4))
    add_network("ovn-a", "ovn", {"parent": "lxdbr0", VOLATILE_PARENT_IPV4: "198.51.100.10"})
    add_network("ovn-b", "ovn", {"parent": "lxdbr0", VOLATILE_PARENT_IPV4: "198.51.100.11"})
    for index in range(3):
        add_network(f"spare{index}", "bridge", {})


def test_config_helpers():
    assert bridge_mtu({}) == 1442
    assert bridge_mtu({"bridge.mtu": "1400"}) == 1400
    assert dns_search_list({}) == ["lxd"]
    assert dns_search_list({"dns.domain": "example"}) == ["example"]
    assert dns_search_list({"dns.search": "a.example, b.example"}) == ["a.example", "b.example"]
    assert router_int_port_ipv4({"ipv4.address": "none"}) is None
    assert str(router_int_port_ipv4({"ipv4.address": "192.0.2.0/24"})) == "192.0.2.1/24"


def test_create_builds_topology(state, registry, northbound, ovs, seeded):
    network = registry.create("ovn-net", "ovn", NETWORK_CONFIG)
    mac = stable_router_mac(state.fingerprint, 7)

    assert network.id == 7
    assert network.status == NetworkStatus.CREATED
    assert network.config[VOLATILE_PARENT_IPV4] == "198.51.100.12"

    assert northbound.chassis_groups == {"lxd-net7": {"chassis-1": 32767}}
    assert northbound.routers["lxd-net7-lr"] == {
        "routes": [("0.0.0.0/0", "198.51.100.1")],
        "nat": [("snat", "198.51.100.12", "192.0.2.0/24")],
    }

    ext_port = northbound.router_ports["lxd-net7-lr-lrp-ext"]
    assert ext_port["networks"] == ["198.51.100.12/24"]
    assert ext_port["mac"] == mac
    assert ext_port["chassis_group"] == "lxd-net7"
    int_port = northbound.router_ports["lxd-net7-lr-lrp-int"]
    assert int_port["networks"] == ["192.0.2.1/24"]
    assert int_port["ra"] is None

    ports = northbound.switch_ports
    assert ports["lxd-net7-ls-ext-lsp-router"]["options"] == {"router-port": "lxd-net7-lr-lrp-ext"}
    assert ports["lxd-net7-ls-ext-lsp-provider"]["type"] == "localnet"
    assert ports["lxd-net7-ls-ext-lsp-provider"]["options"] == {"network_name": "lxdbr0"}
    assert ports["lxd-net7-ls-int-lsp-router"]["options"] == {"router-port": "lxd-net7-lr-lrp-int"}

    assert northbound.switches["lxd-net7-ls-int"]["other_config"] == {
        "subnet": "192.0.2.0/24",
        "exclude_ips": "192.0.2.1",
    }
    (dhcp,) = northbound.dhcp_options.values()
    assert dhcp["switch"] == "lxd-net7-ls-int"
    assert str(dhcp["cidr"]) == "192.0.2.0/24"
    assert dhcp["options"] == {
        "server_id": "192.0.2.1",
        "server_mac": mac,
        "router": "192.0.2.1",
        "lease_time": "3600",
        "dns_server": "{198.51.100.1}",
        "domain_name": '"lxd"',
        "mtu": "1442",
    }

    assert ovs.mappings == {"lxdbr0": "lxdovn1"}


def test_create_orders_objects(registry, northbound, seeded):
    registry.create("ovn-net", "ovn", NETWORK_CONFIG)
    calls = northbound.calls

    assert (
        calls.index("chassis_group_add")
        < calls.index("logical_router_add")
        < calls.index("logical_switch_add")
        < calls.index("logical_switch_dhcpv4_options_set")
    )


def test_create_with_ipv6(state, registry, northbound, add_network):
    add_network(
        "lxdbr0",
        "bridge",
        dict(UPLINK_V4, **{"ipv6.address": "2001:db8:1::1/64"}),
    )
    network = registry.create(
        "ovn-net",
        "ovn",
        {"parent": "lxdbr0", "ipv4.address": "192.0.2.1/24", "ipv6.address": "fd42:1:2:3::1/64"},
    )
    names = network.names
    mac = network.router_mac()

    ext_ipv6 = network.config[VOLATILE_PARENT_IPV6]
    assert northbound.router_ports[names.router_ext_port]["networks"] == [
        "198.51.100.10/24",
        f"{ext_ipv6}/64",
    ]
    assert ("::/0", "2001:db8:1::1") in northbound.routers[names.router]["routes"]
    assert northbound.switches[names.int_switch]["other_config"]["ipv6_prefix"] == "fd42:1:2:3::"
    assert northbound.router_ports[names.router_int_port]["ra"] == {
        "address_mode": "slaac",
        "send_periodic": "true",
        "dnssl": "lxd",
        "rdnss": "2001:db8:1::1",
        "mtu": "1442",
        "min_interval": "30",
        "max_interval": "60",
    }
    dhcpv6 = [row for row in northbound.dhcp_options.values() if row["cidr"].version == 6]
    assert dhcpv6[0]["options"] == {
        "server_id": mac,
        "dns_server": "{2001:db8:1::1}",
        "domain_search": '"lxd"',
    }


def test_create_failure_reverts_everything(state, registry, northbound, ovs, host, seeded):
    northbound.fail_on["logical_switch_port_add"] = "lxd-net7-ls-int-lsp-router"

    with pytest.raises(NorthboundError, match="Failed adding internal switch router port"):
        registry.create("ovn-net", "ovn", NETWORK_CONFIG)

    assert northbound.objects("lxd-net7") == []
    assert northbound.dhcp_options == {}
    assert ovs.bridges == {}
    assert ovs.mappings == {}
    assert host.links == {}

    info = state.store.get_network("ovn-net")
    assert info.status == NetworkStatus.ERRORED
    assert VOLATILE_PARENT_IPV4 not in info.config
    assert state.store.get_network("ovn-a").config[VOLATILE_PARENT_IPV4] == "198.51.100.10"


def test_errored_network_is_retried(state, registry, northbound, seeded):
    northbound.fail_on["logical_router_add"] = ""
    with pytest.raises(NorthboundError):
        registry.create("ovn-net", "ovn", NETWORK_CONFIG)

    registry.handle(NetworkUpsert(name="ovn-net", type="ovn", config=NETWORK_CONFIG))

    info = state.store.get_network("ovn-net")
    assert info.status == NetworkStatus.CREATED
    assert info.config[VOLATILE_PARENT_IPV4] == "198.51.100.12"
    assert "lxd-net7-lr" in northbound.routers


def test_delete_removes_everything(state, registry, northbound, ovs, host, seeded):
    registry.create("ovn-net", "ovn", NETWORK_CONFIG)

    registry.handle(NetworkDelete(name="ovn-net"))

    assert northbound.objects("lxd-net7") == []
    assert northbound.dhcp_options == {}
    assert ovs.bridges == {}
    assert host.links == {}
    assert [info.name for info in _networks(state) if info.type == "ovn"] == ["ovn-a", "ovn-b"]


def test_refresh_dhcp_reuses_option_sets(registry, northbound, seeded):
    network = registry.create("ovn-net", "ovn", NETWORK_CONFIG)
    before = set(northbound.dhcp_options)
    network.config["dns.domain"] = "example"

    network.topology.refresh_dhcp()

    assert set(northbound.dhcp_options) == before
    (dhcp,) = northbound.dhcp_options.values()
    assert dhcp["options"]["domain_name"] == '"example"'


def test_teardown_tolerates_missing_objects(registry, northbound, seeded):
    network = registry.create("ovn-net", "ovn", NETWORK_CONFIG)
    northbound.logical_router_delete("lxd-net7-lr")

    network.topology.teardown()

    assert northbound.objects("lxd-net7") == []


def _networks(state):
    with state.store.transaction() as tx:
        return tx.get_networks()
