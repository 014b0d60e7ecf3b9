"""Data structures and constants shared by the OVN overlay driver.

These light-weight dataclasses describe the persisted network record and the
values derived from the uplink network each time the logical topology is
(re)built.  None of the derived structures are persisted; they are recomputed
from the uplink's configuration and the network's volatile keys on every call.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

# MTU that is safe to use when tunneling using geneve.
GENEVE_TUNNEL_MTU = 1442

CHASSIS_PRIORITY_MAX = 32767

VOLATILE_PARENT_IPV4 = "volatile.parent.ipv4.address"
VOLATILE_PARENT_IPV6 = "volatile.parent.ipv6.address"
VOLATILE_KEYS = (VOLATILE_PARENT_IPV4, VOLATILE_PARENT_IPV6)

DEFAULT_DOMAIN = "lxd"

# Keys whose change requires the logical topology to be rebuilt.
TOPOLOGY_KEYS = frozenset(
    {"parent", "bridge.hwaddr", "bridge.mtu", "ipv4.address", "ipv6.address"}
)

# Keys that only feed DHCP and router advertisement options.
DHCP_KEYS = frozenset({"dns.domain", "dns.search"})

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPInterface = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class NetworkStatus(Enum):
    """Lifecycle status of a managed network record."""

    PENDING = "Pending"
    CREATED = "Created"
    ERRORED = "Errored"


@dataclass
class NetworkInfo:
    """Network record as held by the cluster store."""

    id: int
    name: str
    type: str
    description: str = ""
    config: Dict[str, str] = field(default_factory=dict)
    status: NetworkStatus = NetworkStatus.PENDING


@dataclass
class NetworkPut:
    """Updatable fields of a network."""

    config: Dict[str, str]
    description: str = ""


@dataclass
class ParentVars:
    """OVN object variables derived from the uplink network."""

    # Router.
    router_ext_port_ipv4_net: Optional[ipaddress.IPv4Interface] = None
    router_ext_port_ipv6_net: Optional[ipaddress.IPv6Interface] = None
    router_ext_gw_ipv4: Optional[ipaddress.IPv4Address] = None
    router_ext_gw_ipv6: Optional[ipaddress.IPv6Address] = None

    # External switch.
    ext_switch_provider_name: str = ""

    # DNS.
    dns_ipv4: Optional[ipaddress.IPv4Address] = None
    dns_ipv6: Optional[ipaddress.IPv6Address] = None

    # Volatile keys written by this call (not those reused from a previous run).
    allocated_keys: List[str] = field(default_factory=list)

    def ext_router_ips(self) -> List[IPInterface]:
        ips: List[IPInterface] = []
        if self.router_ext_port_ipv4_net is not None:
            ips.append(self.router_ext_port_ipv4_net)
        if self.router_ext_port_ipv6_net is not None:
            ips.append(self.router_ext_port_ipv6_net)
        return ips


@dataclass(frozen=True)
class ParentBridgeVars:
    """Local plumbing names used to connect a bridge uplink to OVN."""

    ovs_bridge: str
    parent_end: str
    ovs_end: str
