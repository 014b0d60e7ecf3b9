"""Logical topology of an overlay network.

Each network is made of::

    uplink provider network
        |
    <prefix>-ls-ext            external switch (localnet + router ports)
        |
    <prefix>-lr                router, SNAT to the allocated external address
        |
    <prefix>-ls-int            internal switch, DHCPv4/DHCPv6/RA, instance ports

The router's external port is bound to a chassis group holding the local
chassis, which decides where the SNAT gateway runs.

:meth:`TopologyBuilder.setup` creates every object in order and registers the
matching delete after each step; if any step fails the deletes run in reverse
order before the error propagates.  In update mode the router and the
external switch are rebuilt from scratch, while the internal switch (and the
instance ports on it) is kept and its DHCP option sets are rewritten in place.
"""

from __future__ import annotations

import contextlib
import ipaddress
import logging
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping, Optional

from .addresses import router_interface
from .config import (
    CHASSIS_PRIORITY_MAX,
    DEFAULT_DOMAIN,
    GENEVE_TUNNEL_MTU,
    IPInterface,
    ParentVars,
)
from .exceptions import OverlayError
from .northbound import (
    DHCPv4Opts,
    DHCPv6Opts,
    IPAllocationOpts,
    IPv6RAOpts,
    OVNNorthbound,
)
from .revert import Reverter

if TYPE_CHECKING:
    from .driver import OVNNetwork

LOG = logging.getLogger(__name__)

DHCP_LEASE_TIME = 3600

# Short RA intervals until DNSSL can be handed out through DHCPv4 instead.
RA_MIN_INTERVAL = 30
RA_MAX_INTERVAL = 60


def bridge_mtu(config: Mapping[str, str]) -> int:
    value = config.get("bridge.mtu", "")
    if value:
        try:
            return int(value)
        except ValueError:
            LOG.warning("Ignoring invalid bridge.mtu %r", value)
    return GENEVE_TUNNEL_MTU


def domain_name(config: Mapping[str, str]) -> str:
    return config.get("dns.domain") or DEFAULT_DOMAIN


def dns_search_list(config: Mapping[str, str]) -> List[str]:
    value = config.get("dns.search", "")
    if value:
        return [domain.strip() for domain in value.split(",") if domain.strip()]
    return [domain_name(config)]


def _router_int_port(config: Mapping[str, str], key: str) -> Optional[IPInterface]:
    value = config.get(key, "")
    if value in ("", "auto", "none"):
        return None
    return router_interface(value)


def router_int_port_ipv4(config: Mapping[str, str]) -> Optional[ipaddress.IPv4Interface]:
    return _router_int_port(config, "ipv4.address")


def router_int_port_ipv6(config: Mapping[str, str]) -> Optional[ipaddress.IPv6Interface]:
    return _router_int_port(config, "ipv6.address")


@contextlib.contextmanager
def _step(action: str) -> Iterator[None]:
    try:
        yield
    except OverlayError as err:
        raise type(err)(f"{action}: {err}") from err


class TopologyBuilder:
    """Build, refresh and tear down the OVN objects of one network."""

    def __init__(self, network: "OVNNetwork") -> None:
        self._network = network
        self._names = network.names

    def setup(self, update: bool) -> None:
        network = self._network
        names = self._names
        LOG.debug("Setting up network %s (update=%s)", network.name, update)

        with Reverter() as revert:
            client = network.get_client()
            router_mac = network.router_mac()
            parent = network.load_parent()

            network.uplink.attach(parent)
            if not update:
                revert.add(network.uplink.detach, parent)

            with _step("Failed setting up parent port network"):
                parent_vars = network.allocator.setup(
                    network.name, network.config, parent, router_mac
                )
            if parent_vars.allocated_keys:
                revert.add(
                    network.allocator.release,
                    network.name,
                    network.config,
                    list(parent_vars.allocated_keys),
                )

            int_ipv4 = router_int_port_ipv4(network.config)
            int_ipv6 = router_int_port_ipv6(network.config)

            # Chassis group.
            with _step("Failed adding chassis group"):
                client.chassis_group_add(names.chassis_group, may_exist=update)
            revert.add(client.chassis_group_delete, names.chassis_group)

            chassis_id = network.state.ovs.chassis_id()
            with _step("Failed adding chassis to chassis group"):
                client.chassis_group_chassis_add(
                    names.chassis_group, chassis_id, CHASSIS_PRIORITY_MAX
                )

            # Router, always rebuilt so routes and NAT rules match the config.
            with _step("Failed adding router"):
                if update:
                    client.logical_router_delete(names.router)
                client.logical_router_add(names.router)
            revert.add(client.logical_router_delete, names.router)

            with _step("Failed adding default route"):
                if parent_vars.router_ext_gw_ipv4 is not None:
                    client.logical_router_route_add(
                        names.router,
                        ipaddress.ip_network("0.0.0.0/0"),
                        parent_vars.router_ext_gw_ipv4,
                    )
                if parent_vars.router_ext_gw_ipv6 is not None:
                    client.logical_router_route_add(
                        names.router,
                        ipaddress.ip_network("::/0"),
                        parent_vars.router_ext_gw_ipv6,
                    )

            with _step("Failed adding router SNAT rule"):
                if int_ipv4 is not None and parent_vars.router_ext_port_ipv4_net is not None:
                    client.logical_router_snat_add(
                        names.router, int_ipv4.network, parent_vars.router_ext_port_ipv4_net.ip
                    )
                if int_ipv6 is not None and parent_vars.router_ext_port_ipv6_net is not None:
                    client.logical_router_snat_add(
                        names.router, int_ipv6.network, parent_vars.router_ext_port_ipv6_net.ip
                    )

            # External switch and its ports.
            with _step("Failed adding external switch"):
                if update:
                    client.logical_switch_delete(names.ext_switch)
                client.logical_switch_add(names.ext_switch)
            revert.add(client.logical_switch_delete, names.ext_switch)

            with _step("Failed adding external router port"):
                client.logical_router_port_add(
                    names.router, names.router_ext_port, router_mac, parent_vars.ext_router_ips()
                )
            revert.add(client.logical_router_port_delete, names.router_ext_port)

            with _step("Failed linking external router port to chassis group"):
                client.logical_router_port_link_chassis_group(
                    names.router_ext_port, names.chassis_group
                )

            with _step("Failed adding external switch router port"):
                client.logical_switch_port_add(names.ext_switch, names.ext_switch_router_port)
            revert.add(client.logical_switch_port_delete, names.ext_switch_router_port)

            with _step("Failed linking external router port to external switch port"):
                client.logical_switch_port_link_router(
                    names.ext_switch_router_port, names.router_ext_port
                )

            with _step("Failed adding external switch provider port"):
                client.logical_switch_port_add(names.ext_switch, names.ext_switch_provider_port)
            revert.add(client.logical_switch_port_delete, names.ext_switch_provider_port)

            with _step("Failed linking external switch provider port to external provider network"):
                client.logical_switch_port_link_provider_network(
                    names.ext_switch_provider_port, parent_vars.ext_switch_provider_name
                )

            # Internal switch, kept across updates.
            with _step("Failed adding internal switch"):
                client.logical_switch_add(names.int_switch, may_exist=update)
            if not update:
                revert.add(client.logical_switch_delete, names.int_switch)

            with _step("Failed setting IP allocation settings on internal switch"):
                client.logical_switch_set_ip_allocation(
                    names.int_switch,
                    IPAllocationOpts(
                        prefix_ipv4=int_ipv4.network if int_ipv4 is not None else None,
                        prefix_ipv6=int_ipv6.network if int_ipv6 is not None else None,
                        exclude_ipv4=[int_ipv4.ip] if int_ipv4 is not None else [],
                    ),
                )

            self._configure_dhcp(client, parent_vars, router_mac, int_ipv4, int_ipv6, reuse=update)

            int_router_ips: List[IPInterface] = [
                iface for iface in (int_ipv4, int_ipv6) if iface is not None
            ]
            with _step("Failed adding internal router port"):
                client.logical_router_port_add(
                    names.router,
                    names.router_int_port,
                    router_mac,
                    int_router_ips,
                    may_exist=update,
                )
            revert.add(client.logical_router_port_delete, names.router_int_port)

            if int_ipv6 is not None:
                self._configure_ipv6_ra(client, parent_vars)

            with _step("Failed adding internal switch router port"):
                client.logical_switch_port_add(
                    names.int_switch, names.int_switch_router_port, may_exist=update
                )
            revert.add(client.logical_switch_port_delete, names.int_switch_router_port)

            with _step("Failed linking internal router port to internal switch port"):
                client.logical_switch_port_link_router(
                    names.int_switch_router_port, names.router_int_port
                )

            revert.success()

        LOG.info("Network %s logical topology %s", network.name, "updated" if update else "created")

    def refresh_dhcp(self) -> None:
        """Rewrite DHCP and router advertisement settings in place."""

        network = self._network
        LOG.debug("Refreshing DHCP options of network %s", network.name)

        client = network.get_client()
        router_mac = network.router_mac()
        parent_vars = network.allocator.setup(
            network.name, network.config, network.load_parent(), router_mac
        )
        int_ipv4 = router_int_port_ipv4(network.config)
        int_ipv6 = router_int_port_ipv6(network.config)

        self._configure_dhcp(client, parent_vars, router_mac, int_ipv4, int_ipv6, reuse=True)
        if int_ipv6 is not None:
            self._configure_ipv6_ra(client, parent_vars)

    def teardown(self) -> None:
        names = self._names
        client = self._network.get_client()
        LOG.debug("Tearing down logical topology of network %s", self._network.name)

        with _step("Failed deleting router"):
            client.logical_router_delete(names.router)
        with _step("Failed deleting external switch"):
            client.logical_switch_delete(names.ext_switch)
        with _step("Failed deleting internal switch"):
            client.logical_switch_delete(names.int_switch)
        with _step("Failed deleting router ports"):
            client.logical_router_port_delete(names.router_ext_port)
            client.logical_router_port_delete(names.router_int_port)
        with _step("Failed deleting switch ports"):
            client.logical_switch_port_delete(names.ext_switch_router_port)
            client.logical_switch_port_delete(names.ext_switch_provider_port)
            client.logical_switch_port_delete(names.int_switch_router_port)

        # Must be done after the router is removed.
        with _step("Failed deleting chassis group"):
            client.chassis_group_delete(names.chassis_group)

    # ------------------------------------------------------------------
    # DHCP / RA
    # ------------------------------------------------------------------
    def _configure_dhcp(
        self,
        client: OVNNorthbound,
        parent_vars: ParentVars,
        router_mac: str,
        int_ipv4: Optional[ipaddress.IPv4Interface],
        int_ipv6: Optional[ipaddress.IPv6Interface],
        reuse: bool,
    ) -> None:
        config = self._network.config
        switch = self._names.int_switch

        # One option set per address family; a changed subnet rewrites its CIDR.
        existing: Dict[int, str] = {}
        stale: List[str] = []
        if reuse:
            with _step("Failed getting DHCP settings for internal switch"):
                for opts in client.logical_switch_dhcp_options_get(switch):
                    if opts.cidr.version in existing:
                        stale.append(opts.uuid)
                    else:
                        existing[opts.cidr.version] = opts.uuid

        if int_ipv4 is not None:
            with _step("Failed adding DHCPv4 settings for internal switch"):
                client.logical_switch_dhcpv4_options_set(
                    switch,
                    existing.pop(4, ""),
                    int_ipv4.network,
                    DHCPv4Opts(
                        server_id=int_ipv4.ip,
                        server_mac=router_mac,
                        router=int_ipv4.ip,
                        recursive_dns_server=parent_vars.dns_ipv4,
                        domain_name=domain_name(config),
                        lease_time=DHCP_LEASE_TIME,
                        mtu=bridge_mtu(config),
                    ),
                )

        if int_ipv6 is not None:
            with _step("Failed adding DHCPv6 settings for internal switch"):
                client.logical_switch_dhcpv6_options_set(
                    switch,
                    existing.pop(6, ""),
                    int_ipv6.network,
                    DHCPv6Opts(
                        server_id=router_mac,
                        recursive_dns_server=parent_vars.dns_ipv6,
                        dns_search_list=dns_search_list(config),
                    ),
                )

        # Sets left over are for a family that is now disabled, or duplicates.
        stale.extend(existing.values())
        for uuid in stale:
            with _step("Failed deleting unused DHCP settings for internal switch"):
                client.logical_switch_dhcp_options_delete(switch, uuid)

    def _configure_ipv6_ra(self, client: OVNNorthbound, parent_vars: ParentVars) -> None:
        config = self._network.config
        with _step("Failed setting internal router port IPv6 advertisement settings"):
            client.logical_router_port_set_ipv6_advertisements(
                self._names.router_int_port,
                IPv6RAOpts(
                    send_periodic=True,
                    dns_search_list=dns_search_list(config),
                    recursive_dns_server=parent_vars.dns_ipv6,
                    mtu=bridge_mtu(config),
                    min_interval=RA_MIN_INTERVAL,
                    max_interval=RA_MAX_INTERVAL,
                ),
            )
