"""File-based network watcher."""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Event, Thread
from typing import Dict, List

import yaml

from ovn_overlay import NetworkRegistry
from ovn_overlay.events import NetworkDelete, NetworkUpsert
from ovn_overlay.exceptions import OverlayError

LOG = logging.getLogger(__name__)

OVERLAY_TYPE = "ovn"


def _stringify(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _extract_state(payload: dict) -> Dict[str, NetworkUpsert]:
    networks = payload.get("networks")
    if networks is None:
        raise ValueError("networks file missing 'networks' key")
    if not isinstance(networks, list):
        raise ValueError("'networks' must be a list")

    state: Dict[str, NetworkUpsert] = {}
    for entry in networks:
        name = entry.get("name")
        net_type = entry.get("type")
        if name is None or net_type is None:
            continue
        config = entry.get("config") or {}
        if not isinstance(config, dict):
            raise ValueError(f"network '{name}' config must be a mapping")
        state[str(name)] = NetworkUpsert(
            name=str(name),
            type=str(net_type),
            config={str(key): _stringify(value) for key, value in config.items()},
            description=str(entry.get("description", "")),
        )
    return state


class FileNetworkWatcher(Thread):
    """Poll a YAML (or JSON) networks file and publish network events.

    Only successfully applied entries are remembered, so a network whose
    create or update failed is tried again on the next poll.
    """

    def __init__(
        self,
        registry: NetworkRegistry,
        path: Path,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(daemon=True)
        self._registry = registry
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._state: Dict[str, NetworkUpsert] = {}

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("file watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> None:
        if not self._path.exists():
            LOG.debug("networks file %s does not exist yet", self._path)
            return

        try:
            payload = yaml.safe_load(self._path.read_text())
        except yaml.YAMLError as exc:
            LOG.warning("failed to parse networks file %s: %s", self._path, exc)
            return

        if not isinstance(payload, dict):
            LOG.warning("networks file %s must contain a mapping", self._path)
            return

        try:
            desired = _extract_state(payload)
        except ValueError as exc:
            LOG.warning("invalid networks file %s: %s", self._path, exc)
            return

        # Uplinks are created before and deleted after their overlay networks.
        upserts: List[NetworkUpsert] = [
            event for name, event in desired.items() if self._state.get(name) != event
        ]
        upserts.sort(key=lambda event: event.type == OVERLAY_TYPE)
        for event in upserts:
            LOG.debug("network %s (%s) changed", event.name, event.type)
            try:
                self._registry.handle(event)
            except OverlayError:
                LOG.exception("failed to apply network %s", event.name)
                continue
            self._state[event.name] = event

        removed = [self._state[name] for name in set(self._state) - set(desired)]
        removed.sort(key=lambda event: (event.type != OVERLAY_TYPE, event.name))
        for event in removed:
            LOG.debug("network %s removed", event.name)
            try:
                self._registry.handle(NetworkDelete(event.name))
            except OverlayError:
                LOG.exception("failed to delete network %s", event.name)
                continue
            del self._state[event.name]
