"""OVN overlay network driver.

:class:`OVNNetwork` sequences the uplink plumbing, the external address
allocator and the topology builder for each lifecycle call.  Calls made on
behalf of another cluster member (``cluster_notification=True``) only apply
local effects; the member that received the request performs the
northbound changes.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Dict, Optional, Sequence

from .addresses import random_subnet_v4, random_subnet_v6
from .allocator import ParentAddressAllocator
from .base import Network
from .config import (
    DHCP_KEYS,
    TOPOLOGY_KEYS,
    VOLATILE_KEYS,
    IPAddress,
    NetworkPut,
    NetworkStatus,
)
from .exceptions import ConfigError, ConflictError, NetworkNotFound, NorthboundError, PortNotFound
from .identity import router_mac
from .instance_port import InstancePortManager
from .naming import NetworkNames
from .northbound import OVNNorthbound
from .revert import Reverter
from .topology import TopologyBuilder, router_int_port_ipv4, router_int_port_ipv6
from .uplink import UplinkPortManager
from .validate import (
    Validator,
    address_or_auto,
    is_any,
    is_interface_name,
    is_network_address_cidr_v4,
    is_network_address_cidr_v6,
    is_network_address_v4,
    is_network_address_v6,
    is_network_mac,
    is_network_mtu,
    optional,
)

LOG = logging.getLogger(__name__)

NETWORK_TYPE = "ovn"


def _address_or_keyword(validator: Validator) -> Validator:
    def _check(value: str) -> None:
        if value == "none":
            return
        address_or_auto(validator)(value)

    return _check


class OVNNetwork(Network):
    """Overlay network implemented with OVN logical routers and switches."""

    @property
    def names(self) -> NetworkNames:
        return NetworkNames(self.id)

    @property
    def uplink(self) -> UplinkPortManager:
        return UplinkPortManager(self.state, self.names.prefix)

    @property
    def allocator(self) -> ParentAddressAllocator:
        return ParentAddressAllocator(self.state.store)

    @property
    def topology(self) -> TopologyBuilder:
        return TopologyBuilder(self)

    @property
    def instance_ports(self) -> InstancePortManager:
        return InstancePortManager(self)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------
    def validation_rules(self) -> Dict[str, Validator]:
        return {
            "parent": is_interface_name,
            "bridge.hwaddr": optional(is_network_mac),
            "bridge.mtu": optional(is_network_mtu),
            "ipv4.address": _address_or_keyword(is_network_address_cidr_v4),
            "ipv6.address": _address_or_keyword(is_network_address_cidr_v6),
            "dns.domain": is_any,
            "dns.search": is_any,
            # Written by the driver, never by users.
            "volatile.parent.ipv4.address": optional(is_network_address_v4),
            "volatile.parent.ipv6.address": optional(is_network_address_v6),
        }

    def fill_config(self, config: Dict[str, str]) -> None:
        if not config.get("ipv4.address"):
            config["ipv4.address"] = "auto"

        if not config.get("ipv6.address") and self.state.host.ipv6_enabled():
            config["ipv6.address"] = "auto"

        if config.get("ipv4.address") == "auto":
            config["ipv4.address"] = random_subnet_v4(self.state.host.subnet_in_use)

        if config.get("ipv6.address") == "auto":
            config["ipv6.address"] = random_subnet_v6(self.state.host.subnet_in_use)

    def dhcpv4_subnet(self) -> Optional[ipaddress.IPv4Network]:
        iface = router_int_port_ipv4(self.config)
        return iface.network if iface is not None else None

    def dhcpv6_subnet(self) -> Optional[ipaddress.IPv6Network]:
        iface = router_int_port_ipv6(self.config)
        return iface.network if iface is not None else None

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------
    def get_client(self) -> OVNNorthbound:
        try:
            return self.state.northbound()
        except NorthboundError as err:
            raise NorthboundError(f"Failed to get OVN client: {err}") from err

    def router_mac(self) -> str:
        return router_mac(self.config, self.id, self.state.cert_fingerprint)

    def load_parent(self) -> Network:
        # Deferred import: the registry maps type tags to this module.
        from .registry import load_by_name

        parent_name = self.config.get("parent", "")
        try:
            return load_by_name(self.state, parent_name)
        except NetworkNotFound as err:
            raise ConfigError(f"Failed loading parent network {parent_name!r}") from err

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def create(self, cluster_notification: bool = False) -> None:
        LOG.debug("Create network %s (clusterNotification=%s)", self.name, cluster_notification)

        if not cluster_notification:
            self.topology.setup(update=False)

    def start(self) -> None:
        LOG.debug("Start network %s", self.name)

        if self.status == NetworkStatus.PENDING:
            raise ConflictError(f"Cannot start pending network {self.name!r}")

        self.uplink.attach(self.load_parent())

    def stop(self) -> None:
        LOG.debug("Stop network %s", self.name)

    def delete(self, cluster_notification: bool = False) -> None:
        LOG.debug("Delete network %s (clusterNotification=%s)", self.name, cluster_notification)

        if not cluster_notification:
            self.topology.teardown()

        self.uplink.detach(self.load_parent())
        self._common_delete(cluster_notification)

    def rename(self, new_name: str) -> None:
        LOG.debug("Rename network %s to %s", self.name, new_name)

        if self.is_used():
            raise ConflictError(f"Cannot rename network {self.name!r} when in use")

        self._common_rename(new_name)

    def _carry_volatile(self, config: Dict[str, str]) -> None:
        """Keep the driver's volatile keys in an incoming config.

        Moving to another uplink invalidates the allocated addresses, so they
        are dropped and allocated afresh on the new uplink.
        """

        parent_changed = config.get("parent", "") != self.config.get("parent", "")
        for key in VOLATILE_KEYS:
            current = self.config.get(key, "")
            supplied = config.get(key)
            if supplied is not None and supplied != current:
                raise ConfigError(f"Config key {key!r} cannot be changed")

            if parent_changed:
                config.pop(key, None)
            elif current:
                config[key] = current

    def update(self, new: NetworkPut, cluster_notification: bool = False) -> None:
        LOG.debug("Update network %s (clusterNotification=%s)", self.name, cluster_notification)

        config = dict(new.config)
        self._carry_volatile(config)
        self.fill_config(config)
        self.validate(config)
        new = NetworkPut(config=config, description=new.description)

        db_update_needed, changed, old = self._config_changed(new)
        if not db_update_needed:
            return

        old_parent = self.load_parent() if "parent" in changed else None

        with Reverter() as revert:
            revert.add(self._restore, old, cluster_notification)
            self._common_update(new, cluster_notification)

            if not cluster_notification:
                if changed & TOPOLOGY_KEYS:
                    if old_parent is not None:
                        new_parent = self.load_parent()
                        if not self.uplink.is_attached(new_parent):
                            revert.add(self.uplink.detach, new_parent)
                    self.topology.setup(update=True)
                    if old_parent is not None:
                        self.uplink.detach(old_parent)
                elif changed & DHCP_KEYS:
                    self.topology.refresh_dhcp()
                else:
                    LOG.debug(
                        "Network %s changes need no topology change: %s",
                        self.name,
                        sorted(changed),
                    )

            revert.success()

    def _restore(self, old: NetworkPut, cluster_notification: bool) -> None:
        self._common_update(old, cluster_notification)
        if not cluster_notification:
            self.topology.setup(update=True)

    # ------------------------------------------------------------------
    # Instance NICs
    # ------------------------------------------------------------------
    def instance_device_port_add(
        self,
        instance_id: int,
        device_name: str,
        mac: str,
        ips: Sequence[IPAddress] = (),
    ) -> str:
        port = self.instance_ports.attach(instance_id, device_name, mac, ips)

        with self.state.store.transaction() as tx:
            users = tx.get_network_users(self.name)
            if port not in users:
                tx.set_network_users(self.name, users + [port])
        return port

    def instance_device_port_delete(self, instance_id: int, device_name: str) -> None:
        try:
            self.instance_ports.detach(instance_id, device_name)
        except PortNotFound:
            LOG.debug(
                "Instance port of %s/%s already removed from network %s",
                instance_id,
                device_name,
                self.name,
            )

        port = self.names.instance_port(instance_id, device_name)
        with self.state.store.transaction() as tx:
            users = tx.get_network_users(self.name)
            tx.set_network_users(self.name, [user for user in users if user != port])
