import pytest

from ovn_overlay.exceptions import ConfigError
from ovn_overlay.validate import (
    address_or_auto,
    is_interface_name,
    is_network_address_cidr_v4,
    is_network_mac,
    is_network_mtu,
    optional,
    validate_config,
)


@pytest.mark.parametrize("value", ["", "a" * 16, "bad name", ".."])
def test_interface_name_rejected(value):
    with pytest.raises(ConfigError):
        is_interface_name(value)


def test_interface_name_accepted():
    is_interface_name("lxdbr0")
    is_interface_name("a" * 15)


def test_mac_and_mtu():
    is_network_mac("0a:00:00:00:00:01")
    is_network_mtu("1442")

    with pytest.raises(ConfigError):
        is_network_mac("0a:00:00:00:00")
    with pytest.raises(ConfigError):
        is_network_mtu("1000")


def test_cidr_family_is_checked():
    is_network_address_cidr_v4("192.0.2.1/24")

    with pytest.raises(ConfigError):
        is_network_address_cidr_v4("2001:db8::1/64")
    with pytest.raises(ConfigError):
        is_network_address_cidr_v4("192.0.2.1")


def test_optional_and_auto_wrappers():
    optional(is_network_mac)("")
    address_or_auto(is_network_address_cidr_v4)("auto")
    address_or_auto(is_network_address_cidr_v4)("")


def test_validate_config_rejects_unknown_keys():
    rules = {"bridge.mtu": optional(is_network_mtu)}

    validate_config({"bridge.mtu": "1500", "user.note": "x"}, rules)
    with pytest.raises(ConfigError, match="Invalid network option 'ipv4.nat'"):
        validate_config({"ipv4.nat": "true"}, rules)


def test_validate_config_names_failing_key():
    with pytest.raises(ConfigError, match="bridge.mtu"):
        validate_config({"bridge.mtu": "9"}, {"bridge.mtu": optional(is_network_mtu)})
