#!/usr/bin/env python3
"""Validate overlay lab state after the agent has applied its networks file.

Reads the agent's state file and checks that every created overlay network
has its logical router, switches and ports in the OVN northbound database
and that its uplink plumbing exists in the local Open vSwitch.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Dict, Iterable, List

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from ovn_overlay.naming import NetworkNames, parent_bridge_vars  # noqa: E402


class ValidationError(RuntimeError):
    pass


def run(cmd: Iterable[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(list(cmd), capture_output=True, text=True, check=False)


def command(container: str, *args: str) -> List[str]:
    if container:
        return ["docker", "exec", container, *args]
    return list(args)


def checked(container: str, *args: str) -> str:
    result = run(command(container, *args))
    if result.returncode != 0:
        raise ValidationError(f"{' '.join(args)} failed: {result.stderr.strip()}")
    return result.stdout


def load_networks(state_file: Path) -> List[Dict]:
    data = json.loads(state_file.read_text())
    return list(data.get("networks", []))


def check_northbound(container: str, network_id: int) -> None:
    names = NetworkNames(network_id)
    routers = checked(container, "ovn-nbctl", "--bare", "--columns=name", "list", "Logical_Router")
    if names.router not in routers.split():
        raise ValidationError(f"logical router {names.router} missing")

    switches = checked(container, "ovn-nbctl", "--bare", "--columns=name", "list", "Logical_Switch")
    for switch in (names.ext_switch, names.int_switch):
        if switch not in switches.split():
            raise ValidationError(f"logical switch {switch} missing")

    lrps = checked(container, "ovn-nbctl", "lrp-list", names.router)
    for port in (names.router_ext_port, names.router_int_port):
        if port not in lrps:
            raise ValidationError(f"router port {port} missing on {names.router}")

    ext_ports = checked(container, "ovn-nbctl", "lsp-list", names.ext_switch)
    for port in (names.ext_switch_router_port, names.ext_switch_provider_port):
        if port not in ext_ports:
            raise ValidationError(f"switch port {port} missing on {names.ext_switch}")

    int_ports = checked(container, "ovn-nbctl", "lsp-list", names.int_switch)
    if names.int_switch_router_port not in int_ports:
        raise ValidationError(
            f"switch port {names.int_switch_router_port} missing on {names.int_switch}"
        )

    checked(container, "ovn-nbctl", "ha-chassis-group-list", names.chassis_group)


def check_uplink(container: str, parent_id: int, parent_name: str) -> None:
    plumbing = parent_bridge_vars(parent_id)
    result = run(command(container, "ovs-vsctl", "br-exists", plumbing.ovs_bridge))
    if result.returncode != 0:
        raise ValidationError(f"OVS bridge {plumbing.ovs_bridge} missing for uplink {parent_name}")

    mappings = checked(
        container, "ovs-vsctl", "get", "Open_vSwitch", ".", "external_ids:ovn-bridge-mappings"
    )
    if f"{parent_name}:{plumbing.ovs_bridge}" not in mappings:
        raise ValidationError(f"bridge mapping {parent_name}:{plumbing.ovs_bridge} missing")


def main() -> None:
    state_file = Path(
        os.environ.get("STATE_FILE", "/var/lib/ovn-overlay/networks.json")
    )
    if not state_file.exists():
        raise SystemExit(f"agent state file not found: {state_file}")

    container = os.environ.get("OVN_CONTAINER", "")
    networks = load_networks(state_file)
    by_name = {net["name"]: net for net in networks}

    checked_count = 0
    for net in networks:
        if net.get("type") != "ovn" or net.get("status") != "Created":
            continue
        check_northbound(container, int(net["id"]))

        parent = by_name.get(net.get("config", {}).get("parent", ""))
        if parent is None:
            raise ValidationError(f"network {net['name']} has no known parent")
        check_uplink(container, int(parent["id"]), parent["name"])
        checked_count += 1

    print(f"overlay lab validation succeeded ({checked_count} networks)")


if __name__ == "__main__":
    try:
        main()
    except ValidationError as exc:
        print(f"[validate_overlay] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
