"""Process-wide named locks."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Iterator

LOG = logging.getLogger(__name__)


@dataclass
class _Entry:
    lock: Lock = field(default_factory=Lock)
    users: int = 0


class NamedLocks:
    """Keyed mutex registry.

    Callers holding different names never block each other.  An entry only
    lives while at least one caller holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextlib.contextmanager
    def lock(self, name: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(name, _Entry())
            entry.users += 1

        LOG.debug("Acquiring lock %s", name)
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[name]
            LOG.debug("Released lock %s", name)

    def held(self) -> list[str]:
        with self._guard:
            return sorted(self._entries)


_LOCKS = NamedLocks()


def lock(name: str) -> contextlib.AbstractContextManager[None]:
    """Acquire the process-wide lock ``name``."""

    return _LOCKS.lock(name)
