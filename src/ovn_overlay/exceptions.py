"""Exceptions raised by the OVN overlay driver."""

from __future__ import annotations


class OverlayError(Exception):
    """Base class for every error reported to lifecycle callers."""


class ConfigError(OverlayError, ValueError):
    """Invalid network configuration or unsupported uplink."""


class UnknownDriverError(ConfigError):
    """No network driver is registered for the requested type."""


class AddressPoolExhausted(OverlayError):
    """Every address in the uplink's reserved ranges is already allocated."""


class NorthboundError(OverlayError):
    """A call against the OVN northbound database failed."""


class PortNotFound(NorthboundError):
    """The logical switch port does not exist."""


class PlumbingError(OverlayError):
    """A local interface or virtual switch operation failed."""


class ConflictError(OverlayError):
    """The operation conflicts with the network's current state."""


class NetworkNotFound(OverlayError):
    """The network is not present in the store."""
