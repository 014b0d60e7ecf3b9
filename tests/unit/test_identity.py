import base64
import hashlib
import random

import pytest

from ovn_overlay.exceptions import ConfigError
from ovn_overlay.identity import (
    fnv1a_64,
    load_cert_fingerprint,
    random_hwaddr,
    router_mac,
    stable_router_mac,
)


def _no_fingerprint() -> str:
    raise AssertionError("fingerprint must not be loaded")


def test_fnv1a_64_known_values():
    assert fnv1a_64(b"") == 0xCBF29CE484222325
    assert fnv1a_64(b"a") == 0xAF63DC4C8601EC8C


def test_random_hwaddr_is_local_unicast():
    for seed in range(20):
        first = int(random_hwaddr(random.Random(seed)).split(":")[0], 16)
        assert first & 0x02
        assert not first & 0x01


def test_stable_router_mac_is_deterministic():
    assert stable_router_mac("abc", 7) == stable_router_mac("abc", 7)
    assert stable_router_mac("abc", 7) != stable_router_mac("abc", 8)
    assert stable_router_mac("abc", 7) != stable_router_mac("abd", 7)


def test_router_mac_prefers_bridge_hwaddr():
    mac = router_mac({"bridge.hwaddr": "0A:00:00:00:00:01"}, 7, _no_fingerprint)

    assert mac == "0a:00:00:00:00:01"


def test_router_mac_generated_from_fingerprint():
    mac = router_mac({}, 7, lambda: "abc")

    assert mac == stable_router_mac("abc", 7)


def test_router_mac_rejects_invalid_override():
    with pytest.raises(ConfigError):
        router_mac({"bridge.hwaddr": "not-a-mac"}, 7, _no_fingerprint)


def test_load_cert_fingerprint(tmp_path):
    der = b"certificate body"
    pem = (
        "-----BEGIN CERTIFICATE-----\n"
        + base64.encodebytes(der).decode("ascii")
        + "-----END CERTIFICATE-----\n"
    )
    (tmp_path / "server.crt").write_text(pem)

    assert load_cert_fingerprint(tmp_path) == hashlib.sha256(der).hexdigest()


def test_load_cert_fingerprint_missing(tmp_path):
    with pytest.raises(ConfigError):
        load_cert_fingerprint(tmp_path)
