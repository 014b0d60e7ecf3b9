"""Config value validators.

Each validator takes the string value of a config key and raises
:class:`ConfigError` if it is unacceptable.  An empty string means the key is
unset; wrap a validator with :func:`optional` to accept that.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Callable, Dict, Iterable, Mapping

from .exceptions import ConfigError

Validator = Callable[[str], None]

_MAC_RE = re.compile(r"^([0-9a-fA-F]{2})(:[0-9a-fA-F]{2}){5}$")
_IFACE_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")

MTU_MIN = 1280
MTU_MAX = 16384


def optional(validator: Validator) -> Validator:
    def _check(value: str) -> None:
        if value == "":
            return
        validator(value)

    return _check


def is_any(value: str) -> None:
    return None


def is_one_of(*choices: str) -> Validator:
    def _check(value: str) -> None:
        if value not in choices:
            raise ConfigError(f"Invalid value {value!r} (not one of {', '.join(choices)})")

    return _check


def is_bool(value: str) -> None:
    if value.lower() not in ("true", "false", "1", "0", "yes", "no", "on", "off"):
        raise ConfigError(f"Invalid value for a boolean {value!r}")


def is_true(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


def is_network_mac(value: str) -> None:
    if not _MAC_RE.match(value):
        raise ConfigError(f"Invalid MAC address {value!r}")


def is_network_mtu(value: str) -> None:
    try:
        mtu = int(value)
    except ValueError as err:
        raise ConfigError(f"Invalid MTU {value!r}") from err
    if mtu < MTU_MIN or mtu > MTU_MAX:
        raise ConfigError(f"Invalid MTU {value!r} (must be between {MTU_MIN} and {MTU_MAX})")


def _interface(value: str, version: int) -> None:
    if "/" not in value:
        raise ConfigError(f"Invalid CIDR address {value!r}")
    try:
        iface = ipaddress.ip_interface(value)
    except ValueError as err:
        raise ConfigError(f"Invalid CIDR address {value!r}") from err
    if iface.version != version:
        raise ConfigError(f"Not an IPv{version} CIDR address {value!r}")


def is_network_address_cidr_v4(value: str) -> None:
    _interface(value, 4)


def is_network_address_cidr_v6(value: str) -> None:
    _interface(value, 6)


def _address(value: str, version: int) -> None:
    try:
        address = ipaddress.ip_address(value)
    except ValueError as err:
        raise ConfigError(f"Invalid IP address {value!r}") from err
    if address.version != version:
        raise ConfigError(f"Not an IPv{version} address {value!r}")


def is_network_address_v4(value: str) -> None:
    _address(value, 4)


def is_network_address_v6(value: str) -> None:
    _address(value, 6)


def is_interface_name(value: str) -> None:
    if not value:
        raise ConfigError("Interface name cannot be empty")
    if len(value) > 15:
        raise ConfigError(f"Interface name {value!r} is longer than 15 characters")
    if not _IFACE_RE.match(value) or value in (".", ".."):
        raise ConfigError(f"Invalid interface name {value!r}")


def address_or_auto(validator: Validator) -> Validator:
    """Accept ``auto``, an empty value or anything ``validator`` accepts."""

    def _check(value: str) -> None:
        if value == "auto":
            return
        optional(validator)(value)

    return _check


def validate_config(
    config: Mapping[str, str],
    rules: Dict[str, Validator],
    *,
    allowed_prefixes: Iterable[str] = ("user.",),
) -> None:
    """Run every rule against ``config`` and reject unknown keys."""

    for key, rule in rules.items():
        try:
            rule(config.get(key, ""))
        except ConfigError as err:
            raise ConfigError(f"Invalid value for network option {key!r}: {err}") from err

    prefixes = tuple(allowed_prefixes)
    for key in config:
        if key in rules or key.startswith(prefixes):
            continue
        raise ConfigError(f"Invalid network option {key!r}")
