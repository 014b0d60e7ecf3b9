"""OVN overlay network driver.

This package provisions software defined overlay networks on top of a shared
host bridge uplink.  For every overlay network the driver builds a logical
router, an external and an internal logical switch and their ports in the OVN
northbound database, hands out DHCPv4/DHCPv6 and router advertisement
settings on the internal switch and allocates the router's external address
from the uplink's reserved ranges.

The pieces, leaves first:

* :mod:`ovn_overlay.naming` maps the stable network id to OVN object names;
* :mod:`ovn_overlay.identity` derives the router MAC shared by all cluster
  members;
* :mod:`ovn_overlay.allocator` assigns external addresses inside a single
  store transaction;
* :mod:`ovn_overlay.uplink` plumbs the uplink bridge into OVS under a
  per-uplink lock with reference counted teardown;
* :mod:`ovn_overlay.topology` builds and tears down the logical topology with
  rollback on partial failure; and
* :class:`ovn_overlay.driver.OVNNetwork` ties them to the network lifecycle.

:class:`ovn_overlay.registry.NetworkRegistry` dispatches
:class:`~ovn_overlay.events.NetworkUpsert` / :class:`~ovn_overlay.events.NetworkDelete`
events to the driver registered for the network's type.
"""

from .driver import OVNNetwork  # noqa: F401
from .events import NetworkDelete, NetworkUpsert  # noqa: F401
from .registry import NetworkRegistry  # noqa: F401
from .state import State  # noqa: F401

__all__ = [
    "NetworkDelete",
    "NetworkRegistry",
    "NetworkUpsert",
    "OVNNetwork",
    "State",
]
