"""Host side plumbing: links, sysctls and the uplink's dnsmasq."""

from __future__ import annotations

import ipaddress
import logging
import os
import signal
import socket
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import pyroute2

from .config import IPNetwork
from .exceptions import PlumbingError

LOG = logging.getLogger(__name__)

DEFAULT_PROJECT = "default"

_IPV6_DISABLED = Path("/proc/sys/net/ipv6/conf/default/disable_ipv6")


def run(cmd: List[str]) -> subprocess.CompletedProcess[str]:
    LOG.debug("Executing: %s", " ".join(cmd))
    return subprocess.run(cmd, check=False, text=True, capture_output=True)


class HostNetwork:
    """Kernel links and per-uplink dnsmasq files of the local host."""

    def __init__(self, var_dir: Path) -> None:
        self._var_dir = Path(var_dir)

    def _index(self, ipr: pyroute2.IPRoute, name: str) -> int:
        indexes = ipr.link_lookup(ifname=name)
        if not indexes:
            raise PlumbingError(f"Interface {name!r} not found")
        return indexes[0]

    def link_exists(self, name: str) -> bool:
        with pyroute2.IPRoute() as ipr:
            return bool(ipr.link_lookup(ifname=name))

    def veth_add(self, name: str, peer: str) -> None:
        try:
            with pyroute2.IPRoute() as ipr:
                ipr.link("add", ifname=name, kind="veth", peer={"ifname": peer})
        except pyroute2.NetlinkError as err:
            raise PlumbingError(
                f"Failed to create the uplink veth interfaces {name!r} and {peer!r}: {err}"
            ) from err

    def link_delete(self, name: str) -> None:
        try:
            with pyroute2.IPRoute() as ipr:
                ipr.link("del", index=self._index(ipr, name))
        except pyroute2.NetlinkError as err:
            raise PlumbingError(f"Failed to delete interface {name!r}: {err}") from err

    def link_set_up(self, name: str, master: Optional[str] = None) -> None:
        """Bring ``name`` up, optionally enslaving it to bridge ``master``."""

        try:
            with pyroute2.IPRoute() as ipr:
                index = self._index(ipr, name)
                if master is not None:
                    ipr.link("set", index=index, master=self._index(ipr, master))
                ipr.link("set", index=index, state="up")
        except pyroute2.NetlinkError as err:
            raise PlumbingError(f"Failed to bring up interface {name!r}: {err}") from err

    def sysctl_set(self, settings: Dict[str, str]) -> None:
        if not settings:
            return
        result = run(["sysctl", "-w", *(f"{key}={value}" for key, value in settings.items())])
        if result.returncode != 0:
            raise PlumbingError(f"Failed setting sysctls: {result.stderr.strip()}")

    def ipv6_enabled(self) -> bool:
        try:
            return _IPV6_DISABLED.read_text().strip() == "0"
        except OSError:
            return False

    def subnet_in_use(self, subnet: IPNetwork) -> bool:
        """Return True if any local address or route overlaps ``subnet``."""

        family = socket.AF_INET if subnet.version == 4 else socket.AF_INET6
        with pyroute2.IPRoute() as ipr:
            for addr in ipr.get_addr(family=family):
                address = addr.get_attr("IFA_ADDRESS")
                if not address:
                    continue
                network = ipaddress.ip_interface(f"{address}/{addr['prefixlen']}").network
                if network.overlaps(subnet):
                    return True

            for route in ipr.get_routes(family=family):
                dst = route.get_attr("RTA_DST")
                if not dst:
                    continue
                network = ipaddress.ip_network(f"{dst}/{route['dst_len']}", strict=False)
                if network.overlaps(subnet):
                    return True
        return False

    # ------------------------------------------------------------------
    # Uplink dnsmasq
    # ------------------------------------------------------------------
    def _network_dir(self, network: str) -> Path:
        return self._var_dir / "networks" / network

    def dnsmasq_static_entry_path(self, network: str, project: str, name: str) -> Path:
        filename = name if project == DEFAULT_PROJECT else f"{project}_{name}"
        return self._network_dir(network) / "dnsmasq.hosts" / filename

    def dnsmasq_remove_static_entry(self, network: str, project: str, name: str) -> None:
        path = self.dnsmasq_static_entry_path(network, project, name)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as err:
            raise PlumbingError(f"Failed removing dnsmasq entry {path}: {err}") from err
        LOG.debug("Removed dnsmasq static entry %s", path)

    def dnsmasq_reload(self, network: str) -> None:
        """Ask the uplink's dnsmasq, if running, to reload its host files."""

        pid_path = self._network_dir(network) / "dnsmasq.pid"
        try:
            pid = int(pid_path.read_text().strip())
        except FileNotFoundError:
            return
        except (OSError, ValueError) as err:
            raise PlumbingError(f"Failed reading dnsmasq pid file {pid_path}: {err}") from err

        try:
            os.kill(pid, signal.SIGHUP)
        except ProcessLookupError:
            LOG.debug("dnsmasq for %s is not running", network)
        except OSError as err:
            raise PlumbingError(f"Failed to reload dnsmasq for {network!r}: {err}") from err
