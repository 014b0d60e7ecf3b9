"""YAML configuration loader for the overlay agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import yaml
from oslo_config import cfg

from .opts import (
    DEFAULT_NB_CONNECTION,
    DEFAULT_OVSDB_CONNECTION,
    DEFAULT_OVSDB_TIMEOUT,
    DEFAULT_VAR_DIR,
)


@dataclass
class DriverConfig:
    var_dir: Path = Path(DEFAULT_VAR_DIR)
    state_file: Optional[Path] = None
    clustered: bool = False
    northbound_connection: str = DEFAULT_NB_CONNECTION
    ovsdb_connection: str = DEFAULT_OVSDB_CONNECTION
    ovsdb_timeout: int = DEFAULT_OVSDB_TIMEOUT

    def apply(self, conf: cfg.ConfigOpts) -> None:
        """Override the registered oslo.config options with these values."""

        conf.set_override('var_dir', str(self.var_dir))
        conf.set_override(
            'state_file', str(self.state_file) if self.state_file else None
        )
        conf.set_override('clustered', self.clustered)
        conf.set_override(
            'northbound_connection', self.northbound_connection, group='ovn'
        )
        conf.set_override('ovsdb_connection', self.ovsdb_connection, group='ovn')
        conf.set_override('ovsdb_timeout', self.ovsdb_timeout, group='ovn')


@dataclass
class WatcherConfig:
    type: str
    path: Path
    interval: float = 5.0
    options: dict = field(default_factory=dict)


@dataclass
class AgentConfig:
    driver: DriverConfig
    watchers: Sequence[WatcherConfig] = field(default_factory=list)


def _parse_driver(section: dict) -> DriverConfig:
    state_file = section.get("state_file")
    return DriverConfig(
        var_dir=Path(section.get("var_dir", DEFAULT_VAR_DIR)),
        state_file=Path(state_file) if state_file else None,
        clustered=bool(section.get("clustered", False)),
        northbound_connection=str(
            section.get("northbound_connection", DEFAULT_NB_CONNECTION)
        ),
        ovsdb_connection=str(
            section.get("ovsdb_connection", DEFAULT_OVSDB_CONNECTION)
        ),
        ovsdb_timeout=int(section.get("ovsdb_timeout", DEFAULT_OVSDB_TIMEOUT)),
    )


def _parse_watchers(entries: Iterable[dict]) -> List[WatcherConfig]:
    watchers: List[WatcherConfig] = []
    for entry in entries:
        options = entry.get("options", {})
        if not isinstance(options, dict):
            raise ValueError("watcher 'options' must be a mapping if provided")
        watchers.append(
            WatcherConfig(
                type=str(entry["type"]),
                path=Path(entry.get("path", ".")),
                interval=float(entry.get("interval", entry.get("poll_interval", 5.0))),
                options=options,
            )
        )
    return watchers


def load_config(path: Path) -> AgentConfig:
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        raise ValueError("Agent configuration must be a mapping")

    driver_section = data.get("driver")
    if driver_section is None:
        raise ValueError("Configuration missing 'driver' section")
    if not isinstance(driver_section, dict):
        raise ValueError("'driver' section must be a mapping")
    driver = _parse_driver(driver_section)

    watchers_section = data.get("watchers", [])
    if not isinstance(watchers_section, list):
        raise ValueError("'watchers' section must be a list")
    watchers = _parse_watchers(watchers_section)

    return AgentConfig(driver=driver, watchers=watchers)
