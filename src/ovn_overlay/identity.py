"""Stable router MAC generation.

The router MAC must be identical on every cluster member without any
coordination between them, so it is derived from a secret that all members
share (the fingerprint of the cluster certificate) and the network id.  The
fingerprint also keeps standalone servers attached to the same external
network from generating the same MAC for their networks.
"""

from __future__ import annotations

import hashlib
import logging
import random
import ssl
from pathlib import Path
from typing import Callable, Mapping

from .exceptions import ConfigError
from .validate import is_network_mac

LOG = logging.getLogger(__name__)

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

SERVER_CERT = "server.crt"


def fnv1a_64(data: bytes) -> int:
    """Return the 64-bit FNV-1a hash of ``data``."""

    value = FNV64_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV64_PRIME) & _MASK64
    return value


def load_cert_fingerprint(var_dir: Path) -> str:
    """Return the SHA-256 fingerprint of the server certificate in ``var_dir``."""

    cert_path = Path(var_dir) / SERVER_CERT
    try:
        pem = cert_path.read_text()
    except OSError as err:
        raise ConfigError(f"Failed loading server certificate {cert_path}") from err

    try:
        der = ssl.PEM_cert_to_DER_cert(pem)
    except ValueError as err:
        raise ConfigError(f"Invalid server certificate {cert_path}") from err
    return hashlib.sha256(der).hexdigest()


def random_hwaddr(rng: random.Random) -> str:
    """Return a locally administered unicast MAC drawn from ``rng``."""

    octets = [rng.randrange(256) for _ in range(6)]
    octets[0] = (octets[0] & 0xFE) | 0x02
    return ":".join(f"{octet:02x}" for octet in octets)


def stable_router_mac(fingerprint: str, network_id: int) -> str:
    seed = f"{fingerprint}.0.{network_id}"
    rng = random.Random(fnv1a_64(seed.encode("utf-8")))
    hwaddr = random_hwaddr(rng)
    LOG.debug("Stable MAC generated (seed=%s, hwaddr=%s)", seed, hwaddr)
    return hwaddr


def router_mac(
    config: Mapping[str, str],
    network_id: int,
    fingerprint: Callable[[], str],
) -> str:
    """Return the router MAC for a network.

    An explicit ``bridge.hwaddr`` takes precedence and is validated rather
    than corrected.  ``fingerprint`` is only called when a MAC has to be
    generated.
    """

    hwaddr = config.get("bridge.hwaddr", "")
    if not hwaddr:
        hwaddr = stable_router_mac(fingerprint(), network_id)

    try:
        is_network_mac(hwaddr)
    except ConfigError as err:
        raise ConfigError(f"Failed parsing router MAC address {hwaddr!r}") from err
    return hwaddr.lower()
