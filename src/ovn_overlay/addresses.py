"""IP address helpers: ranges, EUI-64 derivation and subnet selection."""

from __future__ import annotations

import ipaddress
import random
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from .config import IPAddress, IPInterface, IPNetwork
from .exceptions import ConfigError

SUBNET_ATTEMPTS = 100


@dataclass(frozen=True)
class IPRange:
    """Inclusive range of addresses of a single family."""

    start: IPAddress
    end: IPAddress

    def __iter__(self) -> Iterator[IPAddress]:
        current = int(self.start)
        last = int(self.end)
        factory = type(self.start)
        while current <= last:
            yield factory(current)
            current += 1

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            return False
        if address.version != self.start.version:
            return False
        return int(self.start) <= int(address) <= int(self.end)

    def __str__(self) -> str:
        if self.start == self.end:
            return str(self.start)
        return f"{self.start}-{self.end}"


def _parse_address(value: str) -> IPAddress:
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError as err:
        raise ConfigError(f"Invalid IP address {value.strip()!r}") from err


def parse_ip_ranges(value: str, *allowed: Optional[IPNetwork]) -> List[IPRange]:
    """Parse a comma separated list of ``start-end`` ranges.

    A single address is accepted as a range of one.  When ``allowed``
    subnets are supplied both ends of every range must lie inside one of them.
    """

    subnets = [net for net in allowed if net is not None]
    ranges: List[IPRange] = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        start_raw, _, end_raw = item.partition("-")
        start = _parse_address(start_raw)
        end = _parse_address(end_raw) if end_raw else start

        if start.version != end.version:
            raise ConfigError(f"IP range {item!r} mixes address families")
        if int(start) > int(end):
            raise ConfigError(f"Start IP {start} is after end IP {end} in range {item!r}")

        if subnets:
            inside = any(
                start.version == net.version and start in net and end in net
                for net in subnets
            )
            if not inside:
                raise ConfigError(
                    f"IP range {item!r} does not fall within any of the allowed networks "
                    f"{', '.join(str(net) for net in subnets)}"
                )

        ranges.append(IPRange(start=start, end=end))
    return ranges


def eui64_address(prefix: ipaddress.IPv6Network, mac: str) -> ipaddress.IPv6Address:
    """Return the EUI-64 address of ``mac`` inside the /64 ``prefix``."""

    if prefix.prefixlen > 64:
        raise ConfigError(f"Prefix {prefix} is too small for an EUI-64 address")
    octets = bytes(int(part, 16) for part in mac.split(":"))
    if len(octets) != 6:
        raise ConfigError(f"Invalid MAC address {mac!r}")
    interface_id = bytes([octets[0] ^ 0x02]) + octets[1:3] + b"\xff\xfe" + octets[3:]
    network = int(prefix.network_address) & ~((1 << 64) - 1)
    return ipaddress.IPv6Address(network | int.from_bytes(interface_id, "big"))


def router_interface(cidr: str) -> IPInterface:
    """Return the router's address and prefix for an ``ipv4/6.address`` value.

    A value whose host part is the network address (``192.0.2.0/24``)
    reserves the first host address of the subnet for the router.
    """

    try:
        iface = ipaddress.ip_interface(cidr)
    except ValueError as err:
        raise ConfigError(f"Failed parsing router's internal port address {cidr!r}") from err

    network = iface.network
    if iface.ip == network.network_address and network.num_addresses > 2:
        return ipaddress.ip_interface(f"{network.network_address + 1}/{network.prefixlen}")
    return iface


def random_subnet_v4(
    in_use: Callable[[IPNetwork], bool], rng: Optional[random.Random] = None
) -> str:
    """Pick an unused ``10.x.y.1/24`` subnet."""

    rng = rng or random.Random()
    for _ in range(SUBNET_ATTEMPTS):
        cidr = f"10.{rng.randrange(255)}.{rng.randrange(255)}.1/24"
        if in_use(ipaddress.ip_interface(cidr).network):
            continue
        return cidr
    raise ConfigError(
        "Failed to automatically find an unused IPv4 subnet, manual configuration required"
    )


def random_subnet_v6(
    in_use: Callable[[IPNetwork], bool], rng: Optional[random.Random] = None
) -> str:
    """Pick an unused ``fd42:x:y:z::1/64`` unique local subnet."""

    rng = rng or random.Random()
    for _ in range(SUBNET_ATTEMPTS):
        cidr = "fd42:{:x}:{:x}:{:x}::1/64".format(
            rng.randrange(65535), rng.randrange(65535), rng.randrange(65535)
        )
        if in_use(ipaddress.ip_interface(cidr).network):
            continue
        return cidr
    raise ConfigError(
        "Failed to automatically find an unused IPv6 subnet, manual configuration required"
    )
