"""External address allocation on a shared uplink.

Each overlay network gets one external address per family on its uplink.
IPv4 addresses (and IPv6 ones when the uplink defines ``ipv6.ovn.ranges``)
come from the uplink's reserved ranges.  The scan of sibling allocations and
the write of the chosen address happen in the same store transaction, so two
networks created at the same time can never be handed the same address.
IPv6 without reserved ranges falls back to the EUI-64 address of the router
MAC, which needs no bookkeeping at all.

Addresses are kept in the network's volatile config keys and reused as-is on
every later call.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .addresses import IPRange, eui64_address, parse_ip_ranges
from .bridge import BridgeNetwork
from .config import (
    VOLATILE_PARENT_IPV4,
    VOLATILE_PARENT_IPV6,
    IPAddress,
    ParentVars,
)
from .exceptions import AddressPoolExhausted, ConfigError
from .store import MemoryStore, StoreTx

LOG = logging.getLogger(__name__)

OVN_NETWORK_TYPE = "ovn"


def allocate_ip(ranges: Sequence[IPRange], allocated: Iterable[IPAddress]) -> IPAddress:
    """Return the first address of ``ranges`` that is not in ``allocated``.

    Ranges are scanned in the order given and each range in ascending order.
    """

    taken = set(allocated)
    for ip_range in ranges:
        for address in ip_range:
            if address not in taken:
                return address
    raise AddressPoolExhausted("No IP addresses available in the uplink's reserved ranges")


def parent_all_allocated_ips(
    tx: StoreTx, parent_name: str, exclude: Optional[str] = None
) -> Tuple[Set[ipaddress.IPv4Address], Set[ipaddress.IPv6Address]]:
    """Return the external addresses held by overlay networks on ``parent_name``.

    Networks in every state are counted: a network still being created has
    already written its allocation into its record.
    """

    ipv4: Set[ipaddress.IPv4Address] = set()
    ipv6: Set[ipaddress.IPv6Address] = set()
    for info in tx.get_networks():
        if info.type != OVN_NETWORK_TYPE or info.name == exclude:
            continue
        if info.config.get("parent") != parent_name:
            continue

        for key, bucket in ((VOLATILE_PARENT_IPV4, ipv4), (VOLATILE_PARENT_IPV6, ipv6)):
            address = _parse_address(info.config.get(key, ""))
            if address is not None:
                bucket.add(address)
    return ipv4, ipv6


def _parse_address(value: str) -> Optional[IPAddress]:
    if not value:
        return None
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        LOG.warning("Ignoring invalid volatile address %r", value)
        return None


class ParentAddressAllocator:
    """Resolve the uplink-derived variables of an overlay network."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def setup(
        self,
        network_name: str,
        config: Dict[str, str],
        parent: BridgeNetwork,
        router_mac: str,
    ) -> ParentVars:
        """Return :class:`ParentVars` for ``network_name`` on ``parent``.

        ``config`` is the network's working config; newly allocated volatile
        keys are written into it and persisted with it.
        """

        parent_ipv4 = parent.ipv4_interface()
        parent_ipv6 = parent.ipv6_interface()

        router_ext_ipv4 = _parse_address(config.get(VOLATILE_PARENT_IPV4, ""))
        router_ext_ipv6 = _parse_address(config.get(VOLATILE_PARENT_IPV6, ""))

        allocated_keys: List[str] = []
        if (parent_ipv4 is not None and router_ext_ipv4 is None) or (
            parent_ipv6 is not None and router_ext_ipv6 is None
        ):
            updated = dict(config)
            with self._store.transaction() as tx:
                all_ipv4, all_ipv6 = parent_all_allocated_ips(tx, parent.name, exclude=network_name)

                if parent_ipv4 is not None and router_ext_ipv4 is None:
                    ranges_raw = parent.config.get("ipv4.ovn.ranges", "")
                    if not ranges_raw:
                        raise ConfigError(
                            "Missing required ipv4.ovn.ranges config key on parent "
                            f"network {parent.name!r}"
                        )
                    ranges = parse_ip_ranges(ranges_raw, parent_ipv4.network)
                    router_ext_ipv4 = allocate_ip(ranges, all_ipv4)
                    updated[VOLATILE_PARENT_IPV4] = str(router_ext_ipv4)
                    allocated_keys.append(VOLATILE_PARENT_IPV4)

                if parent_ipv6 is not None and router_ext_ipv6 is None:
                    ranges_raw = parent.config.get("ipv6.ovn.ranges", "")
                    if ranges_raw:
                        ranges = parse_ip_ranges(ranges_raw, parent_ipv6.network)
                        router_ext_ipv6 = allocate_ip(ranges, all_ipv6)
                    else:
                        router_ext_ipv6 = eui64_address(parent_ipv6.network, router_mac)
                    updated[VOLATILE_PARENT_IPV6] = str(router_ext_ipv6)
                    allocated_keys.append(VOLATILE_PARENT_IPV6)

                info = tx.get_network(network_name)
                tx.update_network(info.id, info.description, updated)

            config.update(updated)
            for key in allocated_keys:
                LOG.info(
                    "Allocated external address %s=%s for network %s on %s",
                    key,
                    config[key],
                    network_name,
                    parent.name,
                )

        parent_vars = ParentVars(
            ext_switch_provider_name=parent.name,
            allocated_keys=allocated_keys,
        )
        if parent_ipv4 is not None and router_ext_ipv4 is not None:
            parent_vars.router_ext_port_ipv4_net = ipaddress.ip_interface(
                f"{router_ext_ipv4}/{parent_ipv4.network.prefixlen}"
            )
            parent_vars.router_ext_gw_ipv4 = parent_ipv4.ip
            parent_vars.dns_ipv4 = parent_ipv4.ip

        if parent_ipv6 is not None and router_ext_ipv6 is not None:
            parent_vars.router_ext_port_ipv6_net = ipaddress.ip_interface(
                f"{router_ext_ipv6}/{parent_ipv6.network.prefixlen}"
            )
            parent_vars.router_ext_gw_ipv6 = parent_ipv6.ip
            parent_vars.dns_ipv6 = parent_ipv6.ip

        return parent_vars

    def release(self, network_name: str, config: Dict[str, str], keys: Sequence[str]) -> None:
        """Drop the volatile ``keys`` from ``config`` and the stored record."""

        for key in keys:
            config.pop(key, None)

        with self._store.transaction() as tx:
            info = tx.get_network(network_name)
            for key in keys:
                info.config.pop(key, None)
            tx.update_network(info.id, info.description, info.config)
        LOG.debug("Released external addresses %s of network %s", list(keys), network_name)
