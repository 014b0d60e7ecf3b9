"""Instance NIC ports on the internal switch."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from .config import IPAddress
from .northbound import SwitchPortOpts
from .revert import Reverter
from .topology import router_int_port_ipv4, router_int_port_ipv6

if TYPE_CHECKING:
    from .driver import OVNNetwork

LOG = logging.getLogger(__name__)


class InstancePortManager:
    def __init__(self, network: "OVNNetwork") -> None:
        self._network = network
        self._names = network.names

    def attach(
        self,
        instance_id: int,
        device_name: str,
        mac: str,
        ips: Sequence[IPAddress] = (),
    ) -> str:
        """Create and configure the switch port of an instance NIC.

        The port may already exist if an earlier stop could not reach the
        controller, so creation tolerates it.  Returns the port name.
        """

        client = self._network.get_client()
        switch = self._names.int_switch

        dhcpv4_id = ""
        int_ipv4 = router_int_port_ipv4(self._network.config)
        if int_ipv4 is not None:
            dhcpv4_id = client.logical_switch_dhcp_options_get_id(switch, int_ipv4.network)

        dhcpv6_id = ""
        int_ipv6 = router_int_port_ipv6(self._network.config)
        if int_ipv6 is not None:
            dhcpv6_id = client.logical_switch_dhcp_options_get_id(switch, int_ipv6.network)

        port = self._names.instance_port(instance_id, device_name)
        with Reverter() as revert:
            client.logical_switch_port_add(switch, port, may_exist=True)
            revert.add(client.logical_switch_port_delete, port)

            client.logical_switch_port_set(
                port,
                SwitchPortOpts(
                    mac=mac,
                    ips=list(ips),
                    dhcpv4_opts_id=dhcpv4_id,
                    dhcpv6_opts_id=dhcpv6_id,
                ),
            )
            revert.success()

        LOG.debug("Attached instance port %s (mac=%s)", port, mac)
        return port

    def detach(self, instance_id: int, device_name: str) -> None:
        """Delete the instance NIC port, raising PortNotFound if absent."""

        port = self._names.instance_port(instance_id, device_name)
        self._network.get_client().logical_switch_port_delete(port, if_exists=False)
        LOG.debug("Detached instance port %s", port)
