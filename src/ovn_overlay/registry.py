"""Network type dispatch and event handling."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Type

from .base import Network, validate_name
from .bridge import BridgeNetwork
from .config import NetworkInfo, NetworkPut, NetworkStatus
from .driver import NETWORK_TYPE as OVN_NETWORK_TYPE, OVNNetwork
from .events import NetworkDelete, NetworkUpsert
from .exceptions import ConfigError, NetworkNotFound, OverlayError, UnknownDriverError
from .state import State

LOG = logging.getLogger(__name__)

NETWORK_DRIVERS: Dict[str, Type[Network]] = {
    "bridge": BridgeNetwork,
    "ovn": OVNNetwork,
}


def _driver(net_type: str, drivers: Optional[Dict[str, Type[Network]]] = None) -> Type[Network]:
    try:
        return (drivers or NETWORK_DRIVERS)[net_type]
    except KeyError as err:
        raise UnknownDriverError(f"Unsupported network type {net_type!r}") from err


def load_by_name(state: State, name: str) -> Network:
    """Load the stored network ``name`` into its driver."""

    with state.store.transaction() as tx:
        info = tx.get_network(name)
    return _driver(info.type)(state, info)


class NetworkRegistry:
    """Dispatch network events to the driver registered for their type."""

    def __init__(self, state: State) -> None:
        self._state = state
        self._drivers: Dict[str, Type[Network]] = dict(NETWORK_DRIVERS)

    def register(self, net_type: str, driver: Type[Network]) -> None:
        if net_type in self._drivers:
            raise ValueError(f"driver '{net_type}' already registered")
        self._drivers[net_type] = driver

    def unregister(self, net_type: str) -> None:
        self._drivers.pop(net_type, None)

    def _build(self, info: NetworkInfo) -> Network:
        return _driver(info.type, self._drivers)(self._state, info)

    def load(self, name: str) -> Network:
        with self._state.store.transaction() as tx:
            info = tx.get_network(name)
        return self._build(info)

    def validate(self, name: str, net_type: str, config: Dict[str, str]) -> None:
        validate_name(name)
        self._build(NetworkInfo(id=0, name=name, type=net_type)).validate(config)

    def fill_config(self, name: str, net_type: str, config: Dict[str, str]) -> None:
        self._build(NetworkInfo(id=0, name=name, type=net_type)).fill_config(config)

    # ------------------------------------------------------------------
    # Lifecycle entry points
    # ------------------------------------------------------------------
    def create(
        self, name: str, net_type: str, config: Dict[str, str], description: str = ""
    ) -> Network:
        """Store a new network and build it."""

        config = dict(config)
        self.fill_config(name, net_type, config)
        self.validate(name, net_type, config)

        with self._state.store.transaction() as tx:
            tx.create_network(name, net_type, description, config)

        return self._create_and_start(name)

    def _create_and_start(self, name: str) -> Network:
        network = self.load(name)
        try:
            network.create(cluster_notification=False)
        except OverlayError:
            with self._state.store.transaction() as tx:
                tx.set_network_status(network.id, NetworkStatus.ERRORED)
            raise

        with self._state.store.transaction() as tx:
            tx.set_network_status(network.id, NetworkStatus.CREATED)
        LOG.info("Created %s network %s", network.type, network.name)

        network = self.load(name)
        network.start()
        return network

    def startup(self) -> None:
        """Start every created network, e.g. after the daemon restarts."""

        with self._state.store.transaction() as tx:
            infos = tx.get_networks()

        # Uplinks start before the overlay networks plumbed into them.
        for info in sorted(infos, key=lambda i: (i.type == OVN_NETWORK_TYPE, i.id)):
            if info.status != NetworkStatus.CREATED:
                continue
            try:
                self._build(info).start()
            except OverlayError:
                LOG.exception("Failed starting network %s", info.name)

    def handle(self, event: NetworkUpsert | NetworkDelete) -> None:
        if isinstance(event, NetworkUpsert):
            self._on_network_upsert(event)
        elif isinstance(event, NetworkDelete):
            self._on_network_delete(event)
        else:
            raise TypeError(f"Unsupported event type: {type(event)!r}")

    def _on_network_upsert(self, event: NetworkUpsert) -> None:
        try:
            network = self.load(event.name)
        except NetworkNotFound:
            self.create(event.name, event.type, dict(event.config), event.description)
            return

        if network.type != event.type:
            raise ConfigError(
                f"Network {event.name!r} is of type {network.type!r}, not {event.type!r}"
            )

        if network.status != NetworkStatus.CREATED:
            LOG.info("Retrying creation of %s network %s", network.type, network.name)
            config = dict(event.config)
            self.fill_config(event.name, event.type, config)
            self.validate(event.name, event.type, config)
            with self._state.store.transaction() as tx:
                tx.update_network(network.id, event.description, config)
            self._create_and_start(event.name)
            return

        network.update(NetworkPut(config=dict(event.config), description=event.description))

    def _on_network_delete(self, event: NetworkDelete) -> None:
        try:
            network = self.load(event.name)
        except NetworkNotFound:
            LOG.debug("Network %s already deleted", event.name)
            return
        network.delete(cluster_notification=False)
