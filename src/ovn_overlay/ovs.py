"""Local Open vSwitch database access."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ovsdbapp.backend.ovs_idl import connection
from ovsdbapp.schema.open_vswitch import impl_idl as ovs_impl_idl

from .exceptions import PlumbingError

LOG = logging.getLogger(__name__)

BRIDGE_MAPPINGS_KEY = "ovn-bridge-mappings"
SYSTEM_ID_KEY = "system-id"


def parse_bridge_mappings(value: str) -> Dict[str, str]:
    """Parse ``provider:bridge,...`` into a provider to bridge mapping."""

    mappings: Dict[str, str] = {}
    for item in value.split(","):
        provider, sep, bridge = item.strip().partition(":")
        if not sep or not provider:
            continue
        mappings[provider] = bridge
    return mappings


def format_bridge_mappings(mappings: Dict[str, str]) -> str:
    return ",".join(f"{provider}:{bridge}" for provider, bridge in mappings.items())


class OpenVSwitch:
    """Bridges, ports and OVN settings of the local virtual switch."""

    def __init__(self, api: Any) -> None:
        self._api = api

    @classmethod
    def connect(cls, remote: str, timeout: int = 60) -> "OpenVSwitch":
        try:
            idl = connection.OvsdbIdl.from_server(remote, "Open_vSwitch")
            api = ovs_impl_idl.OvsdbIdl(connection.Connection(idl=idl, timeout=timeout))
        except Exception as err:
            raise PlumbingError(f"Failed connecting to Open vSwitch {remote!r}: {err}") from err
        LOG.info("Connected to Open vSwitch database %s", remote)
        return cls(api)

    def _execute(self, command: Any, action: str) -> Any:
        try:
            return command.execute(check_error=True)
        except Exception as err:
            raise PlumbingError(f"{action}: {err}") from err

    def bridge_add(self, name: str, may_exist: bool = True) -> None:
        self._execute(self._api.add_br(name, may_exist=may_exist), f"Failed adding bridge {name!r}")

    def bridge_delete(self, name: str) -> None:
        self._execute(self._api.del_br(name, if_exists=True), f"Failed deleting bridge {name!r}")

    def bridge_exists(self, name: str) -> bool:
        return bool(self._execute(self._api.br_exists(name), f"Failed looking up bridge {name!r}"))

    def bridge_port_add(self, bridge: str, port: str, may_exist: bool = True) -> None:
        self._execute(
            self._api.add_port(bridge, port, may_exist=may_exist),
            f"Failed adding port {port!r} to bridge {bridge!r}",
        )

    def bridge_port_delete(self, bridge: str, port: str) -> None:
        self._execute(
            self._api.del_port(port, bridge=bridge, if_exists=True),
            f"Failed deleting port {port!r} from bridge {bridge!r}",
        )

    def bridge_port_list(self, bridge: str) -> List[str]:
        ports = self._execute(self._api.list_ports(bridge), f"Failed listing ports of {bridge!r}")
        return list(ports)

    def _external_ids(self) -> Dict[str, str]:
        return dict(
            self._execute(
                self._api.db_get("Open_vSwitch", ".", "external_ids"),
                "Failed reading Open vSwitch external IDs",
            )
        )

    def ovn_bridge_mappings(self) -> Dict[str, str]:
        return parse_bridge_mappings(self._external_ids().get(BRIDGE_MAPPINGS_KEY, ""))

    def ovn_bridge_mapping_add(self, bridge: str, provider: str) -> None:
        mappings = self.ovn_bridge_mappings()
        if mappings.get(provider) == bridge:
            return
        mappings[provider] = bridge
        self._execute(
            self._api.db_set(
                "Open_vSwitch",
                ".",
                ("external_ids", {BRIDGE_MAPPINGS_KEY: format_bridge_mappings(mappings)}),
            ),
            f"Failed adding OVN bridge mapping {provider}:{bridge}",
        )

    def ovn_bridge_mapping_delete(self, bridge: str, provider: str) -> None:
        mappings = self.ovn_bridge_mappings()
        if mappings.get(provider) != bridge:
            return
        del mappings[provider]
        action = f"Failed removing OVN bridge mapping {provider}:{bridge}"
        if mappings:
            command = self._api.db_set(
                "Open_vSwitch",
                ".",
                ("external_ids", {BRIDGE_MAPPINGS_KEY: format_bridge_mappings(mappings)}),
            )
        else:
            command = self._api.db_remove("Open_vSwitch", ".", "external_ids", BRIDGE_MAPPINGS_KEY)
        self._execute(command, action)

    def chassis_id(self) -> str:
        """Return the OVN chassis name of this host."""

        chassis = self._external_ids().get(SYSTEM_ID_KEY, "")
        if not chassis:
            raise PlumbingError("Open vSwitch has no system-id set")
        return chassis
