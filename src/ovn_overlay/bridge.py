"""Host bridge networks as seen by the overlay driver.

Managing the bridge itself (creating the kernel bridge, running dnsmasq,
firewalling) happens elsewhere.  This projection only validates the keys
overlay networks read from their uplink and keeps the record's lifecycle
consistent with the overlay networks that depend on it.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Dict, Optional

from .addresses import parse_ip_ranges
from .base import Network
from .config import IPInterface, NetworkPut
from .exceptions import ConfigError, ConflictError
from .validate import (
    Validator,
    is_any,
    is_bool,
    is_network_address_cidr_v4,
    is_network_address_cidr_v6,
    is_network_mac,
    is_network_mtu,
    is_one_of,
    is_true,
    optional,
)

LOG = logging.getLogger(__name__)

NETWORK_TYPE = "bridge"


def _address_or_keyword(validator: Validator) -> Validator:
    def _check(value: str) -> None:
        if value in ("", "auto", "none"):
            return
        validator(value)

    return _check


def _ranges(value: str) -> None:
    parse_ip_ranges(value)


def _interface(value: str) -> Optional[IPInterface]:
    if value in ("", "auto", "none"):
        return None
    return ipaddress.ip_interface(value)


class BridgeNetwork(Network):
    """Uplink bridge record."""

    def validation_rules(self) -> Dict[str, Validator]:
        return {
            "bridge.hwaddr": optional(is_network_mac),
            "bridge.mtu": optional(is_network_mtu),
            "bridge.mode": optional(is_one_of("standard", "fan")),
            "ipv4.address": _address_or_keyword(is_network_address_cidr_v4),
            "ipv4.dhcp": optional(is_bool),
            "ipv4.ovn.ranges": optional(_ranges),
            "ipv6.address": _address_or_keyword(is_network_address_cidr_v6),
            "ipv6.dhcp": optional(is_bool),
            "ipv6.ovn.ranges": optional(_ranges),
            "dns.domain": is_any,
        }

    def validate(self, config: Dict[str, str]) -> None:
        super().validate(config)
        self.check_cluster_wide_mac_safe(config)

    def check_cluster_wide_mac_safe(self, config: Dict[str, str]) -> None:
        """Refuse a static MAC that every cluster member would share."""

        if not self.state.clustered:
            return
        if config.get("bridge.mode") == "fan":
            return
        if config.get("bridge.hwaddr"):
            raise ConfigError("Cannot use static bridge.hwaddr MAC address in cluster")

    def ipv4_interface(self) -> Optional[ipaddress.IPv4Interface]:
        return _interface(self._config.get("ipv4.address", ""))

    def ipv6_interface(self) -> Optional[ipaddress.IPv6Interface]:
        return _interface(self._config.get("ipv6.address", ""))

    def dhcpv4_subnet(self) -> Optional[ipaddress.IPv4Network]:
        iface = self.ipv4_interface()
        if iface is None or not is_true(self._config.get("ipv4.dhcp", "true")):
            return None
        return iface.network

    def dhcpv6_subnet(self) -> Optional[ipaddress.IPv6Network]:
        iface = self.ipv6_interface()
        if iface is None or not is_true(self._config.get("ipv6.dhcp", "true")):
            return None
        return iface.network

    def is_used(self) -> bool:
        if super().is_used():
            return True

        with self.state.store.transaction() as tx:
            for info in tx.get_networks():
                if info.type == "ovn" and info.config.get("parent") == self._name:
                    return True
        return False

    def create(self, cluster_notification: bool = False) -> None:
        LOG.debug(
            "Create bridge network %s (clusterNotification=%s)", self._name, cluster_notification
        )

    def start(self) -> None:
        LOG.debug("Start bridge network %s", self._name)

    def stop(self) -> None:
        LOG.debug("Stop bridge network %s", self._name)

    def delete(self, cluster_notification: bool = False) -> None:
        LOG.debug(
            "Delete bridge network %s (clusterNotification=%s)", self._name, cluster_notification
        )
        if self.is_used():
            raise ConflictError(f"Cannot delete network {self._name!r} that is in use")
        self._common_delete(cluster_notification)

    def rename(self, new_name: str) -> None:
        if self.is_used():
            raise ConflictError(f"Cannot rename network {self._name!r} that is in use")
        self._common_rename(new_name)

    def update(self, new: NetworkPut, cluster_notification: bool = False) -> None:
        LOG.debug(
            "Update bridge network %s (clusterNotification=%s)", self._name, cluster_notification
        )
        self.validate(new.config)
        db_update_needed, _, _ = self._config_changed(new)
        if not db_update_needed:
            return
        self._common_update(new, cluster_notification)
