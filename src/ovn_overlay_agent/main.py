"""Entry point for the standalone overlay agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event, Lock
from typing import Callable, Optional

from oslo_config import cfg

from ovn_overlay import NetworkRegistry, State
from ovn_overlay.host import HostNetwork
from ovn_overlay.northbound import OVNNorthbound
from ovn_overlay.ovs import OpenVSwitch
from ovn_overlay.store import open_store

from .config import load_config
from .opts import CONF, register_opts
from .watchers import FileNetworkWatcher

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def northbound_factory(remote: str, timeout: int) -> Callable[[], OVNNorthbound]:
    """Return a callable connecting to the northbound database on first use."""

    client: Optional[OVNNorthbound] = None
    guard = Lock()

    def _get() -> OVNNorthbound:
        nonlocal client
        with guard:
            if client is None:
                client = OVNNorthbound.connect(remote, timeout)
            return client

    return _get


def build_state(conf: cfg.ConfigOpts) -> State:
    var_dir = Path(conf.var_dir)
    store = open_store(Path(conf.state_file) if conf.state_file else None)
    return State(
        store=store,
        host=HostNetwork(var_dir),
        ovs=OpenVSwitch.connect(conf.ovn.ovsdb_connection, conf.ovn.ovsdb_timeout),
        northbound=northbound_factory(
            conf.ovn.northbound_connection, conf.ovn.ovsdb_timeout
        ),
        var_dir=var_dir,
        clustered=conf.clustered,
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the OVN overlay agent")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/ovn-overlay/agent.yaml"),
        help="Path to the agent configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = load_config(args.config)

    register_opts(CONF)
    CONF(args=[], project="ovn-overlay", default_config_files=[])
    config.driver.apply(CONF)

    registry = NetworkRegistry(build_state(CONF))
    registry.startup()

    stop_event = Event()

    watchers = []
    for watcher_cfg in config.watchers:
        if watcher_cfg.type == "file":
            watcher = FileNetworkWatcher(
                registry=registry,
                path=watcher_cfg.path,
                interval=watcher_cfg.interval,
                stop_event=stop_event,
            )
        else:
            raise ValueError(f"unsupported watcher type '{watcher_cfg.type}'")
        # Perform an initial poll so we react immediately
        try:
            watcher.poll()
        except Exception:  # pragma: no cover - logged inside watcher
            LOG.exception("initial poll failed for watcher %s", watcher_cfg.path)
        watcher.start()
        watchers.append(watcher)

    if not watchers:
        LOG.warning("no watchers configured; agent will idle")

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    for watcher in watchers:
        watcher.join()

    LOG.info("overlay agent stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
