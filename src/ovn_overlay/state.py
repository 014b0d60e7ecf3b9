"""Runtime handles shared by all network drivers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from .host import HostNetwork
from .identity import load_cert_fingerprint
from .northbound import OVNNorthbound
from .ovs import OpenVSwitch
from .store import MemoryStore

LOG = logging.getLogger(__name__)


class ClusterNotifier(Protocol):
    """Forwards a lifecycle change to the other cluster members."""

    def notify(self, action: str, network: str, payload: Dict[str, Any]) -> None:
        ...


@dataclass
class State:
    store: MemoryStore
    host: HostNetwork
    ovs: OpenVSwitch
    northbound: Callable[[], OVNNorthbound]
    var_dir: Path
    clustered: bool = False
    notifier: Optional[ClusterNotifier] = None
    fingerprint: Optional[str] = field(default=None, repr=False)

    def cert_fingerprint(self) -> str:
        """Return the fingerprint of the cluster certificate, loading it once."""

        if self.fingerprint is None:
            self.fingerprint = load_cert_fingerprint(self.var_dir)
            LOG.debug("Loaded server certificate fingerprint from %s", self.var_dir)
        return self.fingerprint

    def notify(self, action: str, network: str, payload: Dict[str, Any]) -> None:
        if not self.clustered or self.notifier is None:
            return
        self.notifier.notify(action, network, payload)
