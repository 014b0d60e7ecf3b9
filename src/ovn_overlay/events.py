"""Event primitives consumed by the network registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True)
class NetworkUpsert:
    """Desired state of a network.

    Publishers send the full config every time; the registry works out
    whether the network has to be created or updated.
    """

    name: str
    type: str
    config: Mapping[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass(frozen=True)
class NetworkDelete:
    """Signals that a network should be removed entirely."""

    name: str
