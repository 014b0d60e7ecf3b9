"""Deterministic OVN object names.

Every logical object the driver creates is named from the network's stable
numeric id, so any cluster member can find (and delete) the objects of a
network without holding a copy of their state.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import ParentBridgeVars


def network_prefix(network_id: int) -> str:
    return f"lxd-net{network_id}"


@dataclass(frozen=True)
class NetworkNames:
    """OVN object names for the network with id ``network_id``."""

    network_id: int

    @property
    def prefix(self) -> str:
        return network_prefix(self.network_id)

    @property
    def chassis_group(self) -> str:
        return self.prefix

    @property
    def router(self) -> str:
        return f"{self.prefix}-lr"

    @property
    def router_ext_port(self) -> str:
        return f"{self.router}-lrp-ext"

    @property
    def router_int_port(self) -> str:
        return f"{self.router}-lrp-int"

    @property
    def ext_switch(self) -> str:
        return f"{self.prefix}-ls-ext"

    @property
    def ext_switch_router_port(self) -> str:
        return f"{self.ext_switch}-lsp-router"

    @property
    def ext_switch_provider_port(self) -> str:
        return f"{self.ext_switch}-lsp-provider"

    @property
    def int_switch(self) -> str:
        return f"{self.prefix}-ls-int"

    @property
    def int_switch_router_port(self) -> str:
        return f"{self.int_switch}-lsp-router"

    @property
    def instance_port_prefix(self) -> str:
        return f"{self.prefix}-instance"

    def instance_port(self, instance_id: int, device_name: str) -> str:
        return f"{self.instance_port_prefix}-{instance_id}-{device_name}"


def parent_bridge_vars(parent_id: int) -> ParentBridgeVars:
    """Return the local plumbing names for the uplink with id ``parent_id``."""

    ovs_bridge = f"lxdovn{parent_id}"
    return ParentBridgeVars(
        ovs_bridge=ovs_bridge,
        parent_end=f"{ovs_bridge}a",
        ovs_end=f"{ovs_bridge}b",
    )


def parent_lock_name(parent_name: str) -> str:
    """Lock name serializing plumbing changes on the uplink ``parent_name``."""

    return f"network.ovn.{parent_name}"
