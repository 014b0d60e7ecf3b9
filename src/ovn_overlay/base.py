"""Behaviour shared by every managed network type."""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from typing import Dict, Set, Tuple

from .config import NetworkInfo, NetworkPut, NetworkStatus
from .state import State
from .validate import Validator, is_interface_name, validate_config

LOG = logging.getLogger(__name__)


def validate_name(name: str) -> None:
    """Network names double as interface names on the host."""

    is_interface_name(name)


class Network(ABC):
    """A network loaded from the store.

    Drivers receive the shared :class:`State` and a snapshot of the stored
    record.  ``config`` is the driver's working copy; changes to it are only
    persisted through a store transaction.
    """

    def __init__(self, state: State, info: NetworkInfo) -> None:
        self.state = state
        self._id = info.id
        self._name = info.name
        self._type = info.type
        self._description = info.description
        self._config: Dict[str, str] = dict(info.config)
        self._status = info.status

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._name!r} id={self._id}>"

    @property
    def id(self) -> int:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> str:
        return self._type

    @property
    def description(self) -> str:
        return self._description

    @property
    def config(self) -> Dict[str, str]:
        return self._config

    @property
    def status(self) -> NetworkStatus:
        return self._status

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    @abstractmethod
    def validation_rules(self) -> Dict[str, Validator]:
        """Return the per-key rules for this network type."""

    def validate(self, config: Dict[str, str]) -> None:
        validate_config(config, self.validation_rules())

    def fill_config(self, config: Dict[str, str]) -> None:
        """Populate defaults in ``config``."""

    def dhcpv4_subnet(self):
        return None

    def dhcpv6_subnet(self):
        return None

    def is_used(self) -> bool:
        with self.state.store.transaction() as tx:
            return bool(tx.get_network_users(self._name))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @abstractmethod
    def create(self, cluster_notification: bool = False) -> None:
        ...

    @abstractmethod
    def start(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def delete(self, cluster_notification: bool = False) -> None:
        ...

    @abstractmethod
    def rename(self, new_name: str) -> None:
        ...

    @abstractmethod
    def update(self, new: NetworkPut, cluster_notification: bool = False) -> None:
        ...

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------
    def _config_changed(self, new: NetworkPut) -> Tuple[bool, Set[str], NetworkPut]:
        """Diff ``new`` against the current network.

        Returns whether the record needs writing, the config keys whose value
        changed (including added and removed keys) and the current values.
        """

        old = NetworkPut(config=dict(self._config), description=self._description)

        changed: Set[str] = set()
        for key in set(old.config) | set(new.config):
            if old.config.get(key) != new.config.get(key):
                changed.add(key)

        db_update_needed = bool(changed) or old.description != new.description
        return db_update_needed, changed, old

    def _common_update(self, new: NetworkPut, cluster_notification: bool) -> None:
        """Apply ``new`` in memory and, unless notified, persist and forward it."""

        self._description = new.description
        self._config = dict(new.config)

        if cluster_notification:
            return

        with self.state.store.transaction() as tx:
            tx.update_network(self._id, new.description, new.config)

        self.state.notify(
            "update",
            self._name,
            {"config": dict(new.config), "description": new.description},
        )

    def _common_rename(self, new_name: str) -> None:
        validate_name(new_name)
        with self.state.store.transaction() as tx:
            tx.rename_network(self._id, new_name)

        old_dir = self.state.var_dir / "networks" / self._name
        if old_dir.exists():
            old_dir.rename(self.state.var_dir / "networks" / new_name)

        LOG.info("Renamed network %s to %s", self._name, new_name)
        self._name = new_name

    def _common_delete(self, cluster_notification: bool) -> None:
        net_dir = self.state.var_dir / "networks" / self._name
        if net_dir.exists():
            shutil.rmtree(net_dir)

        if not cluster_notification:
            with self.state.store.transaction() as tx:
                tx.delete_network(self._id)
        LOG.info("Deleted network %s", self._name)

