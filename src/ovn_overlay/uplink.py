"""Local plumbing between an uplink bridge and OVN.

Every overlay network on a host bridge uplink shares the same pieces: a veth
pair with one end enslaved to the uplink bridge and the other end plugged
into a dedicated OVS bridge, which is then mapped to the uplink's provider
network in ``ovn-bridge-mappings``.  Attach and detach for a given uplink are
serialized with a named lock.  Detach only removes the shared pieces once no
other overlay network's patch port remains on the OVS bridge.
"""

from __future__ import annotations

import logging
from typing import Dict

from .base import Network
from .bridge import NETWORK_TYPE as BRIDGE_NETWORK_TYPE
from .exceptions import ConfigError
from .locking import lock
from .naming import parent_bridge_vars, parent_lock_name
from .revert import Reverter
from .state import State

LOG = logging.getLogger(__name__)

DNSMASQ_PROJECT = "default"


def _ipv6_sysctls(*interfaces: str) -> Dict[str, str]:
    settings = {}
    for iface in interfaces:
        settings[f"net.ipv6.conf.{iface}.disable_ipv6"] = "1"
        settings[f"net.ipv6.conf.{iface}.forwarding"] = "0"
    return settings


class UplinkPortManager:
    """Attach and detach the network ``network_prefix`` to its uplink."""

    def __init__(self, state: State, network_prefix: str) -> None:
        self._state = state
        self._network_prefix = network_prefix

    def _check_type(self, parent: Network) -> None:
        if parent.type != BRIDGE_NETWORK_TYPE:
            raise ConfigError(f"Network type {parent.type!r} unsupported as OVN parent")

    def attach(self, parent: Network) -> None:
        self._check_type(parent)
        host = self._state.host
        ovs = self._state.ovs
        plumbing = parent_bridge_vars(parent.id)
        ovs_bridge, parent_end, ovs_end = plumbing.ovs_bridge, plumbing.parent_end, plumbing.ovs_end

        with lock(parent_lock_name(parent.name)), Reverter() as revert:
            if not host.link_exists(parent_end) and not host.link_exists(ovs_end):
                host.veth_add(parent_end, ovs_end)
                revert.add(host.link_delete, parent_end)
                LOG.debug("Created uplink veth pair %s/%s", parent_end, ovs_end)

            host.sysctl_set(_ipv6_sysctls(parent_end, ovs_end))

            host.link_set_up(parent_end, master=parent.name)
            host.link_set_up(ovs_end)

            if not ovs.bridge_exists(ovs_bridge):
                ovs.bridge_add(ovs_bridge, may_exist=True)
                revert.add(ovs.bridge_delete, ovs_bridge)

            if ovs_end not in ovs.bridge_port_list(ovs_bridge):
                ovs.bridge_port_add(ovs_bridge, ovs_end, may_exist=True)
                revert.add(ovs.bridge_port_delete, ovs_bridge, ovs_end)

            ovs.ovn_bridge_mapping_add(ovs_bridge, parent.name)
            revert.success()

        LOG.debug("Attached %s to uplink %s", self._network_prefix, parent.name)

    def is_attached(self, parent: Network) -> bool:
        return self._state.ovs.bridge_exists(parent_bridge_vars(parent.id).ovs_bridge)

    def detach(self, parent: Network) -> bool:
        """Release the uplink plumbing, returning True if it was torn down."""

        self._check_type(parent)
        host = self._state.host
        ovs = self._state.ovs
        plumbing = parent_bridge_vars(parent.id)
        ovs_bridge, parent_end, ovs_end = plumbing.ovs_bridge, plumbing.parent_end, plumbing.ovs_end

        # The uplink's dnsmasq may hold a static lease for our external address.
        host.dnsmasq_remove_static_entry(parent.name, DNSMASQ_PROJECT, self._network_prefix)
        host.dnsmasq_reload(parent.name)

        with lock(parent_lock_name(parent.name)):
            remove_veths = False
            if ovs.bridge_exists(ovs_bridge):
                ports = ovs.bridge_port_list(ovs_bridge)
                if len(ports) <= 1:
                    ovs.ovn_bridge_mapping_delete(ovs_bridge, parent.name)
                    ovs.bridge_delete(ovs_bridge)
                    remove_veths = True
                else:
                    LOG.debug(
                        "Uplink bridge %s still has %d ports, keeping it", ovs_bridge, len(ports)
                    )
            else:
                remove_veths = True

            if remove_veths:
                for iface in (parent_end, ovs_end):
                    if host.link_exists(iface):
                        host.link_delete(iface)
                LOG.info("Released uplink plumbing %s of %s", ovs_bridge, parent.name)

        return remove_veths
