"""OVN northbound client used to build logical topologies.

Thin wrapper around ``ovsdbapp``'s OVN_Northbound API exposing the handful of
operations the driver needs under stable names.  Add operations take a
``may_exist`` flag; delete operations are no-ops when the object is already
gone, except :meth:`OVNNorthbound.logical_switch_port_delete` which can be
asked to report a missing port.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ovsdbapp.backend.ovs_idl import connection
from ovsdbapp.schema.ovn_northbound import impl_idl as nb_impl_idl

from .config import IPAddress, IPInterface, IPNetwork
from .exceptions import NorthboundError, PortNotFound

LOG = logging.getLogger(__name__)

# External ID used to associate DHCP option sets with a logical switch.
SWITCH_EXT_ID_KEY = "lxd_switch"

IPV6_ADDRESS_MODE_SLAAC = "slaac"


@dataclass
class IPAllocationOpts:
    prefix_ipv4: Optional[ipaddress.IPv4Network] = None
    prefix_ipv6: Optional[ipaddress.IPv6Network] = None
    exclude_ipv4: Sequence[ipaddress.IPv4Address] = ()

    def as_other_config(self) -> Dict[str, str]:
        other_config: Dict[str, str] = {}
        if self.prefix_ipv4 is not None:
            other_config["subnet"] = str(self.prefix_ipv4)
        if self.prefix_ipv6 is not None:
            other_config["ipv6_prefix"] = str(self.prefix_ipv6.network_address)
        if self.exclude_ipv4:
            other_config["exclude_ips"] = " ".join(str(ip) for ip in self.exclude_ipv4)
        return other_config


@dataclass
class DHCPv4Opts:
    server_id: IPAddress
    server_mac: str
    router: IPAddress
    recursive_dns_server: Optional[IPAddress] = None
    domain_name: str = ""
    lease_time: int = 3600
    mtu: int = 0

    def as_options(self) -> Dict[str, str]:
        options = {
            "server_id": str(self.server_id),
            "server_mac": self.server_mac,
            "router": str(self.router),
            "lease_time": str(self.lease_time),
        }
        if self.recursive_dns_server is not None:
            options["dns_server"] = "{%s}" % self.recursive_dns_server
        if self.domain_name:
            options["domain_name"] = '"%s"' % self.domain_name
        if self.mtu:
            options["mtu"] = str(self.mtu)
        return options


@dataclass
class DHCPv6Opts:
    server_id: str
    recursive_dns_server: Optional[IPAddress] = None
    dns_search_list: List[str] = field(default_factory=list)

    def as_options(self) -> Dict[str, str]:
        options = {"server_id": self.server_id}
        if self.recursive_dns_server is not None:
            options["dns_server"] = "{%s}" % self.recursive_dns_server
        if self.dns_search_list:
            options["domain_search"] = '"%s"' % ",".join(self.dns_search_list)
        return options


@dataclass
class IPv6RAOpts:
    address_mode: str = IPV6_ADDRESS_MODE_SLAAC
    send_periodic: bool = True
    dns_search_list: List[str] = field(default_factory=list)
    recursive_dns_server: Optional[IPAddress] = None
    mtu: int = 0
    min_interval: int = 0
    max_interval: int = 0

    def as_ra_configs(self) -> Dict[str, str]:
        configs = {
            "address_mode": self.address_mode,
            "send_periodic": "true" if self.send_periodic else "false",
        }
        if self.dns_search_list:
            configs["dnssl"] = ",".join(self.dns_search_list)
        if self.recursive_dns_server is not None:
            configs["rdnss"] = str(self.recursive_dns_server)
        if self.mtu:
            configs["mtu"] = str(self.mtu)
        if self.min_interval:
            configs["min_interval"] = str(self.min_interval)
        if self.max_interval:
            configs["max_interval"] = str(self.max_interval)
        return configs


@dataclass
class SwitchPortOpts:
    mac: str
    ips: Sequence[IPAddress] = ()
    dhcpv4_opts_id: str = ""
    dhcpv6_opts_id: str = ""

    def address(self) -> str:
        return " ".join([self.mac, *(str(ip) for ip in self.ips)])


@dataclass(frozen=True)
class DHCPOptsSet:
    uuid: str
    cidr: IPNetwork


class OVNNorthbound:
    """Operations against the OVN northbound database."""

    def __init__(self, api: Any) -> None:
        self._api = api

    @classmethod
    def connect(cls, remote: str, timeout: int = 60) -> "OVNNorthbound":
        if not remote:
            raise NorthboundError("OVN northbound connection is not configured")
        try:
            idl = connection.OvsdbIdl.from_server(remote, "OVN_Northbound")
            api = nb_impl_idl.OvnNbApiIdlImpl(
                connection.Connection(idl=idl, timeout=timeout)
            )
        except Exception as err:
            raise NorthboundError(f"Failed connecting to OVN northbound {remote!r}: {err}") from err
        LOG.info("Connected to OVN northbound database %s", remote)
        return cls(api)

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------
    def _execute(self, command: Any, action: str) -> Any:
        try:
            return command.execute(check_error=True)
        except Exception as err:
            raise NorthboundError(f"{action}: {err}") from err

    def _transact(self, commands: Iterable[Any], action: str) -> None:
        try:
            with self._api.transaction(check_error=True) as txn:
                for command in commands:
                    txn.add(command)
        except Exception as err:
            raise NorthboundError(f"{action}: {err}") from err

    # ------------------------------------------------------------------
    # Chassis groups
    # ------------------------------------------------------------------
    def chassis_group_add(self, name: str, may_exist: bool = False) -> None:
        self._execute(
            self._api.ha_chassis_group_add(name, may_exist=may_exist),
            f"Failed adding chassis group {name!r}",
        )

    def chassis_group_delete(self, name: str) -> None:
        self._execute(
            self._api.ha_chassis_group_del(name, if_exists=True),
            f"Failed deleting chassis group {name!r}",
        )

    def chassis_group_chassis_add(self, name: str, chassis_id: str, priority: int) -> None:
        self._execute(
            self._api.ha_chassis_group_add_chassis(name, chassis_id, priority),
            f"Failed adding chassis {chassis_id!r} to chassis group {name!r}",
        )

    # ------------------------------------------------------------------
    # Logical routers
    # ------------------------------------------------------------------
    def logical_router_add(self, name: str, may_exist: bool = False) -> None:
        self._execute(
            self._api.lr_add(name, may_exist=may_exist),
            f"Failed adding logical router {name!r}",
        )

    def logical_router_delete(self, name: str) -> None:
        self._execute(
            self._api.lr_del(name, if_exists=True),
            f"Failed deleting logical router {name!r}",
        )

    def logical_router_route_add(self, router: str, prefix: IPNetwork, nexthop: IPAddress) -> None:
        self._execute(
            self._api.lr_route_add(router, str(prefix), str(nexthop), may_exist=True),
            f"Failed adding route {prefix} via {nexthop} to router {router!r}",
        )

    def logical_router_snat_add(
        self, router: str, internal_net: IPNetwork, external_ip: IPAddress
    ) -> None:
        self._execute(
            self._api.lr_nat_add(
                router, "snat", str(external_ip), str(internal_net), may_exist=True
            ),
            f"Failed adding SNAT {internal_net} -> {external_ip} to router {router!r}",
        )

    def logical_router_port_add(
        self,
        router: str,
        port: str,
        mac: str,
        networks: Sequence[IPInterface],
        may_exist: bool = False,
    ) -> None:
        self._execute(
            self._api.lrp_add(
                router, port, mac, [str(net) for net in networks], may_exist=may_exist
            ),
            f"Failed adding router port {port!r}",
        )

    def logical_router_port_delete(self, port: str) -> None:
        self._execute(
            self._api.lrp_del(port, if_exists=True),
            f"Failed deleting router port {port!r}",
        )

    def logical_router_port_link_chassis_group(self, port: str, group: str) -> None:
        action = f"Failed linking router port {port!r} to chassis group {group!r}"
        chassis_group = self._execute(self._api.ha_chassis_group_get(group), action)
        self._execute(
            self._api.db_set(
                "Logical_Router_Port", port, ("ha_chassis_group", chassis_group.uuid)
            ),
            action,
        )

    def logical_router_port_set_ipv6_advertisements(self, port: str, opts: IPv6RAOpts) -> None:
        self._execute(
            self._api.db_set(
                "Logical_Router_Port", port, ("ipv6_ra_configs", opts.as_ra_configs())
            ),
            f"Failed setting IPv6 router advertisements on {port!r}",
        )

    # ------------------------------------------------------------------
    # Logical switches
    # ------------------------------------------------------------------
    def logical_switch_add(self, name: str, may_exist: bool = False) -> None:
        self._execute(
            self._api.ls_add(name, may_exist=may_exist),
            f"Failed adding logical switch {name!r}",
        )

    def logical_switch_delete(self, name: str) -> None:
        """Delete switch ``name`` along with the DHCP option sets tagged to it."""

        commands = [self._api.ls_del(name, if_exists=True)]
        for opts in self.logical_switch_dhcp_options_get(name):
            commands.append(self._api.dhcp_options_del(opts.uuid))
        self._transact(commands, f"Failed deleting logical switch {name!r}")

    def logical_switch_set_ip_allocation(self, name: str, opts: IPAllocationOpts) -> None:
        self._execute(
            self._api.db_set("Logical_Switch", name, ("other_config", opts.as_other_config())),
            f"Failed setting IP allocation on switch {name!r}",
        )

    def logical_switch_dhcp_options_get(self, switch: str) -> List[DHCPOptsSet]:
        rows = self._execute(
            self._api.dhcp_options_list(),
            f"Failed listing DHCP options of switch {switch!r}",
        )
        result = []
        for row in rows:
            if row.external_ids.get(SWITCH_EXT_ID_KEY) != switch:
                continue
            result.append(DHCPOptsSet(uuid=str(row.uuid), cidr=ipaddress.ip_network(row.cidr)))
        return result

    def logical_switch_dhcp_options_get_id(self, switch: str, cidr: IPNetwork) -> str:
        for opts in self.logical_switch_dhcp_options_get(switch):
            if opts.cidr == cidr:
                return opts.uuid
        return ""

    def logical_switch_dhcp_options_delete(self, switch: str, uuid: str) -> None:
        self._execute(
            self._api.dhcp_options_del(uuid),
            f"Failed deleting DHCP options {uuid} of switch {switch!r}",
        )

    def _dhcp_options_set(
        self, switch: str, uuid: str, cidr: IPNetwork, options: Dict[str, str]
    ) -> str:
        action = f"Failed setting DHCP options for {cidr} on switch {switch!r}"
        if not uuid:
            row = self._execute(
                self._api.dhcp_options_add(str(cidr), **{SWITCH_EXT_ID_KEY: switch}),
                action,
            )
            uuid = str(row.uuid)
        else:
            self._execute(self._api.db_set("DHCP_Options", uuid, ("cidr", str(cidr))), action)

        self._execute(self._api.dhcp_options_set_options(uuid, **options), action)
        return uuid

    def logical_switch_dhcpv4_options_set(
        self, switch: str, uuid: str, cidr: ipaddress.IPv4Network, opts: DHCPv4Opts
    ) -> str:
        return self._dhcp_options_set(switch, uuid, cidr, opts.as_options())

    def logical_switch_dhcpv6_options_set(
        self, switch: str, uuid: str, cidr: ipaddress.IPv6Network, opts: DHCPv6Opts
    ) -> str:
        return self._dhcp_options_set(switch, uuid, cidr, opts.as_options())

    # ------------------------------------------------------------------
    # Logical switch ports
    # ------------------------------------------------------------------
    def logical_switch_port_add(self, switch: str, port: str, may_exist: bool = False) -> None:
        self._execute(
            self._api.lsp_add(switch, port, may_exist=may_exist),
            f"Failed adding switch port {port!r} to switch {switch!r}",
        )

    def logical_switch_port_set(self, port: str, opts: SwitchPortOpts) -> None:
        commands = [self._api.lsp_set_addresses(port, [opts.address()])]
        if opts.dhcpv4_opts_id:
            commands.append(self._api.lsp_set_dhcpv4_options(port, opts.dhcpv4_opts_id))
        if opts.dhcpv6_opts_id:
            commands.append(self._api.lsp_set_dhcpv6_options(port, opts.dhcpv6_opts_id))
        self._transact(commands, f"Failed configuring switch port {port!r}")

    def logical_switch_port_exists(self, port: str) -> bool:
        rows = self._execute(
            self._api.db_find_rows("Logical_Switch_Port", ("name", "=", port)),
            f"Failed looking up switch port {port!r}",
        )
        return bool(list(rows))

    def logical_switch_port_delete(self, port: str, if_exists: bool = True) -> None:
        if not if_exists and not self.logical_switch_port_exists(port):
            raise PortNotFound(f"Logical switch port {port!r} not found")
        self._execute(
            self._api.lsp_del(port, if_exists=True),
            f"Failed deleting switch port {port!r}",
        )

    def logical_switch_port_link_router(self, port: str, router_port: str) -> None:
        self._transact(
            [
                self._api.lsp_set_type(port, "router"),
                self._api.lsp_set_options(port, router_port=router_port),
                self._api.lsp_set_addresses(port, ["router"]),
            ],
            f"Failed linking switch port {port!r} to router port {router_port!r}",
        )

    def logical_switch_port_link_provider_network(self, port: str, provider: str) -> None:
        self._transact(
            [
                self._api.lsp_set_type(port, "localnet"),
                self._api.lsp_set_options(port, network_name=provider),
                self._api.lsp_set_addresses(port, ["unknown"]),
            ],
            f"Failed linking switch port {port!r} to provider network {provider!r}",
        )
