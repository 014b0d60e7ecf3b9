from pathlib import Path
from typing import Dict, List, Optional

import pytest

from ovn_overlay import NetworkRegistry, State
from ovn_overlay.config import IPNetwork, NetworkStatus
from ovn_overlay.exceptions import NorthboundError, PlumbingError, PortNotFound
from ovn_overlay.northbound import DHCPOptsSet
from ovn_overlay.store import MemoryStore

FINGERPRINT = "5d3c1e0f" * 8


class FakeNorthbound:
    """In-memory stand-in for :class:`ovn_overlay.northbound.OVNNorthbound`.

    ``fail_on`` maps a method name to an object name (or ``""`` for any
    call); the matching call raises once.
    """

    def __init__(self) -> None:
        self.chassis_groups: Dict[str, Dict[str, int]] = {}
        self.routers: Dict[str, dict] = {}
        self.router_ports: Dict[str, dict] = {}
        self.switches: Dict[str, dict] = {}
        self.switch_ports: Dict[str, dict] = {}
        self.dhcp_options: Dict[str, dict] = {}
        self.calls: List[str] = []
        self.fail_on: Dict[str, str] = {}
        self._next_uuid = 1

    def _record(self, method: str, *names: str) -> None:
        self.calls.append(method)
        target = self.fail_on.get(method)
        if target is not None and (target == "" or target in names):
            del self.fail_on[method]
            raise NorthboundError(f"{method} failed")

    def objects(self, prefix: str) -> List[str]:
        found = []
        for table in (
            self.chassis_groups,
            self.routers,
            self.router_ports,
            self.switches,
            self.switch_ports,
        ):
            found.extend(name for name in table if name.startswith(prefix))
        found.extend(
            uuid for uuid, row in self.dhcp_options.items() if row["switch"].startswith(prefix)
        )
        return found

    # Chassis groups.
    def chassis_group_add(self, name, may_exist=False):
        self._record("chassis_group_add", name)
        if name in self.chassis_groups and not may_exist:
            raise NorthboundError(f"chassis group {name} already exists")
        self.chassis_groups.setdefault(name, {})

    def chassis_group_delete(self, name):
        self._record("chassis_group_delete", name)
        self.chassis_groups.pop(name, None)

    def chassis_group_chassis_add(self, name, chassis_id, priority):
        self._record("chassis_group_chassis_add", name)
        if name not in self.chassis_groups:
            raise NorthboundError(f"chassis group {name} not found")
        self.chassis_groups[name][chassis_id] = priority

    # Routers.
    def logical_router_add(self, name, may_exist=False):
        self._record("logical_router_add", name)
        if name in self.routers and not may_exist:
            raise NorthboundError(f"router {name} already exists")
        self.routers.setdefault(name, {"routes": [], "nat": []})

    def logical_router_delete(self, name):
        self._record("logical_router_delete", name)
        self.routers.pop(name, None)
        for port in [p for p, row in self.router_ports.items() if row["router"] == name]:
            del self.router_ports[port]

    def logical_router_route_add(self, router, prefix, nexthop):
        self._record("logical_router_route_add", router)
        self.routers[router]["routes"].append((str(prefix), str(nexthop)))

    def logical_router_snat_add(self, router, internal_net, external_ip):
        self._record("logical_router_snat_add", router)
        self.routers[router]["nat"].append(("snat", str(external_ip), str(internal_net)))

    def logical_router_port_add(self, router, port, mac, networks, may_exist=False):
        self._record("logical_router_port_add", router, port)
        if router not in self.routers:
            raise NorthboundError(f"router {router} not found")
        if port in self.router_ports and not may_exist:
            raise NorthboundError(f"router port {port} already exists")
        self.router_ports[port] = {
            "router": router,
            "mac": mac,
            "networks": [str(net) for net in networks],
            "chassis_group": None,
            "ra": None,
        }

    def logical_router_port_delete(self, port):
        self._record("logical_router_port_delete", port)
        self.router_ports.pop(port, None)

    def logical_router_port_link_chassis_group(self, port, group):
        self._record("logical_router_port_link_chassis_group", port)
        self.router_ports[port]["chassis_group"] = group

    def logical_router_port_set_ipv6_advertisements(self, port, opts):
        self._record("logical_router_port_set_ipv6_advertisements", port)
        self.router_ports[port]["ra"] = opts.as_ra_configs()

    # Switches.
    def logical_switch_add(self, name, may_exist=False):
        self._record("logical_switch_add", name)
        if name in self.switches and not may_exist:
            raise NorthboundError(f"switch {name} already exists")
        self.switches.setdefault(name, {"other_config": {}})

    def logical_switch_delete(self, name):
        self._record("logical_switch_delete", name)
        self.switches.pop(name, None)
        for port in [p for p, row in self.switch_ports.items() if row["switch"] == name]:
            del self.switch_ports[port]
        for uuid in [u for u, row in self.dhcp_options.items() if row["switch"] == name]:
            del self.dhcp_options[uuid]

    def logical_switch_set_ip_allocation(self, name, opts):
        self._record("logical_switch_set_ip_allocation", name)
        self.switches[name]["other_config"] = opts.as_other_config()

    def logical_switch_dhcp_options_get(self, switch):
        self._record("logical_switch_dhcp_options_get", switch)
        return [
            DHCPOptsSet(uuid=uuid, cidr=row["cidr"])
            for uuid, row in self.dhcp_options.items()
            if row["switch"] == switch
        ]

    def logical_switch_dhcp_options_get_id(self, switch, cidr):
        for opts in self.logical_switch_dhcp_options_get(switch):
            if opts.cidr == cidr:
                return opts.uuid
        return ""

    def logical_switch_dhcp_options_delete(self, switch, uuid):
        self._record("logical_switch_dhcp_options_delete", switch)
        self.dhcp_options.pop(uuid, None)

    def _dhcp_options_set(self, method, switch, uuid, cidr, options):
        self._record(method, switch)
        if not uuid:
            uuid = f"dhcp-{self._next_uuid}"
            self._next_uuid += 1
        self.dhcp_options[uuid] = {"switch": switch, "cidr": cidr, "options": options}
        return uuid

    def logical_switch_dhcpv4_options_set(self, switch, uuid, cidr, opts):
        return self._dhcp_options_set(
            "logical_switch_dhcpv4_options_set", switch, uuid, cidr, opts.as_options()
        )

    def logical_switch_dhcpv6_options_set(self, switch, uuid, cidr, opts):
        return self._dhcp_options_set(
            "logical_switch_dhcpv6_options_set", switch, uuid, cidr, opts.as_options()
        )

    # Switch ports.
    def logical_switch_port_add(self, switch, port, may_exist=False):
        self._record("logical_switch_port_add", switch, port)
        if switch not in self.switches:
            raise NorthboundError(f"switch {switch} not found")
        if port in self.switch_ports:
            if not may_exist:
                raise NorthboundError(f"switch port {port} already exists")
            return
        self.switch_ports[port] = {
            "switch": switch,
            "type": "",
            "options": {},
            "addresses": [],
            "dhcpv4": "",
            "dhcpv6": "",
        }

    def logical_switch_port_set(self, port, opts):
        self._record("logical_switch_port_set", port)
        row = self.switch_ports[port]
        row["addresses"] = [opts.address()]
        row["dhcpv4"] = opts.dhcpv4_opts_id
        row["dhcpv6"] = opts.dhcpv6_opts_id

    def logical_switch_port_delete(self, port, if_exists=True):
        self._record("logical_switch_port_delete", port)
        if port not in self.switch_ports and not if_exists:
            raise PortNotFound(f"Logical switch port {port!r} not found")
        self.switch_ports.pop(port, None)

    def logical_switch_port_link_router(self, port, router_port):
        self._record("logical_switch_port_link_router", port)
        row = self.switch_ports[port]
        row.update(type="router", options={"router-port": router_port}, addresses=["router"])

    def logical_switch_port_link_provider_network(self, port, provider):
        self._record("logical_switch_port_link_provider_network", port)
        row = self.switch_ports[port]
        row.update(type="localnet", options={"network_name": provider}, addresses=["unknown"])


class FakeOVS:
    def __init__(self, system_id: str = "chassis-1") -> None:
        self.bridges: Dict[str, List[str]] = {}
        self.mappings: Dict[str, str] = {}
        self.system_id = system_id
        self.fail_on: Dict[str, str] = {}

    def _check(self, method: str, *names: str) -> None:
        target = self.fail_on.get(method)
        if target is not None and (target == "" or target in names):
            del self.fail_on[method]
            raise PlumbingError(f"{method} failed")

    def bridge_add(self, name, may_exist=True):
        self._check("bridge_add", name)
        if name in self.bridges and not may_exist:
            raise PlumbingError(f"bridge {name} already exists")
        self.bridges.setdefault(name, [])

    def bridge_delete(self, name):
        self.bridges.pop(name, None)

    def bridge_exists(self, name):
        return name in self.bridges

    def bridge_port_add(self, bridge, port, may_exist=True):
        self._check("bridge_port_add", bridge, port)
        ports = self.bridges[bridge]
        if port in ports:
            if not may_exist:
                raise PlumbingError(f"port {port} already exists")
            return
        ports.append(port)

    def bridge_port_delete(self, bridge, port):
        if port in self.bridges.get(bridge, []):
            self.bridges[bridge].remove(port)

    def bridge_port_list(self, bridge):
        return list(self.bridges[bridge])

    def ovn_bridge_mappings(self):
        return dict(self.mappings)

    def ovn_bridge_mapping_add(self, bridge, provider):
        self._check("ovn_bridge_mapping_add", bridge)
        self.mappings[provider] = bridge

    def ovn_bridge_mapping_delete(self, bridge, provider):
        if self.mappings.get(provider) == bridge:
            del self.mappings[provider]

    def chassis_id(self):
        if not self.system_id:
            raise PlumbingError("Open vSwitch has no system-id set")
        return self.system_id


class FakeHost:
    def __init__(self, ipv6: bool = True) -> None:
        self.links: Dict[str, dict] = {}
        self.sysctls: Dict[str, str] = {}
        self.ipv6 = ipv6
        self.used_subnets: List[IPNetwork] = []
        self.veths_created = 0
        self.dnsmasq_removed: List[tuple] = []
        self.dnsmasq_reloaded: List[str] = []

    def link_exists(self, name):
        return name in self.links

    def veth_add(self, name, peer):
        if name in self.links or peer in self.links:
            raise PlumbingError(f"veth {name} already exists")
        self.links[name] = {"peer": peer, "up": False, "master": None}
        self.links[peer] = {"peer": name, "up": False, "master": None}
        self.veths_created += 1

    def link_delete(self, name):
        if name not in self.links:
            raise PlumbingError(f"Interface {name!r} not found")
        peer = self.links.pop(name)["peer"]
        self.links.pop(peer, None)

    def link_set_up(self, name, master: Optional[str] = None):
        if name not in self.links:
            raise PlumbingError(f"Interface {name!r} not found")
        self.links[name]["up"] = True
        if master is not None:
            self.links[name]["master"] = master

    def sysctl_set(self, settings):
        self.sysctls.update(settings)

    def ipv6_enabled(self):
        return self.ipv6

    def subnet_in_use(self, subnet):
        return any(
            net.version == subnet.version and net.overlaps(subnet) for net in self.used_subnets
        )

    def dnsmasq_remove_static_entry(self, network, project, name):
        self.dnsmasq_removed.append((network, project, name))

    def dnsmasq_reload(self, network):
        self.dnsmasq_reloaded.append(network)


UPLINK_CONFIG = {
    "ipv4.address": "198.51.100.1/24",
    "ipv4.ovn.ranges": "198.51.100.10-198.51.100.20",
    "ipv6.address": "2001:db8:1::1/64",
}


@pytest.fixture
def northbound() -> FakeNorthbound:
    return FakeNorthbound()


@pytest.fixture
def ovs() -> FakeOVS:
    return FakeOVS()


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def state(tmp_path: Path, northbound, ovs, host) -> State:
    return State(
        store=MemoryStore(),
        host=host,
        ovs=ovs,
        northbound=lambda: northbound,
        var_dir=tmp_path,
        fingerprint=FINGERPRINT,
    )


@pytest.fixture
def registry(state) -> NetworkRegistry:
    return NetworkRegistry(state)


@pytest.fixture
def add_network(state):
    """Store a network record directly, bypassing the drivers."""

    def _add(name, net_type, config, status=NetworkStatus.CREATED) -> int:
        with state.store.transaction() as tx:
            network_id = tx.create_network(name, net_type, "", config)
            tx.set_network_status(network_id, status)
        return network_id

    return _add


@pytest.fixture
def uplink(add_network) -> int:
    return add_network("lxdbr0", "bridge", dict(UPLINK_CONFIG))
