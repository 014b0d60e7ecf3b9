"""Network record store with a transaction primitive.

The driver treats the cluster database as an atomic key-value store: every
read-modify-write of a network record happens inside :meth:`transaction`.
Transactions are serialized by a store-wide lock, so the reads made inside
one never observe another transaction's uncommitted writes, and a transaction
that raises leaves the store exactly as it found it.
"""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Dict, Iterator, List, Optional

from .config import NetworkInfo, NetworkStatus
from .exceptions import ConflictError, NetworkNotFound

LOG = logging.getLogger(__name__)


@dataclass
class _Data:
    networks: Dict[int, NetworkInfo] = field(default_factory=dict)
    users: Dict[str, List[str]] = field(default_factory=dict)
    next_id: int = 1


class StoreTx:
    """Operations available inside a store transaction."""

    def __init__(self, data: _Data) -> None:
        self._data = data

    def _find(self, name: str) -> NetworkInfo:
        for info in self._data.networks.values():
            if info.name == name:
                return info
        raise NetworkNotFound(f"Network {name!r} not found")

    def get_network(self, name: str) -> NetworkInfo:
        """Return a copy of the network record ``name`` in any state."""

        return copy.deepcopy(self._find(name))

    def get_networks(self) -> List[NetworkInfo]:
        return [copy.deepcopy(info) for info in self._data.networks.values()]

    def create_network(
        self,
        name: str,
        net_type: str,
        description: str,
        config: Dict[str, str],
    ) -> int:
        if any(info.name == name for info in self._data.networks.values()):
            raise ConflictError(f"Network {name!r} already exists")

        network_id = self._data.next_id
        self._data.next_id += 1
        self._data.networks[network_id] = NetworkInfo(
            id=network_id,
            name=name,
            type=net_type,
            description=description,
            config=dict(config),
            status=NetworkStatus.PENDING,
        )
        return network_id

    def _get_by_id(self, network_id: int) -> NetworkInfo:
        try:
            return self._data.networks[network_id]
        except KeyError as err:
            raise NetworkNotFound(f"Network with id {network_id} not found") from err

    def update_network(self, network_id: int, description: str, config: Dict[str, str]) -> None:
        info = self._get_by_id(network_id)
        info.description = description
        info.config = dict(config)

    def set_network_status(self, network_id: int, status: NetworkStatus) -> None:
        self._get_by_id(network_id).status = status

    def rename_network(self, network_id: int, new_name: str) -> None:
        if any(info.name == new_name for info in self._data.networks.values()):
            raise ConflictError(f"Network {new_name!r} already exists")
        info = self._get_by_id(network_id)
        self._data.users[new_name] = self._data.users.pop(info.name, [])
        info.name = new_name

    def delete_network(self, network_id: int) -> None:
        info = self._data.networks.pop(network_id, None)
        if info is not None:
            self._data.users.pop(info.name, None)

    def get_network_users(self, name: str) -> List[str]:
        return list(self._data.users.get(name, []))

    def set_network_users(self, name: str, users: List[str]) -> None:
        if users:
            self._data.users[name] = list(users)
        else:
            self._data.users.pop(name, None)


class MemoryStore:
    """In-memory store."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._data = _Data()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[StoreTx]:
        with self._lock:
            snapshot = copy.deepcopy(self._data)
            try:
                yield StoreTx(self._data)
            except BaseException:
                # Restore in place so outer transaction handles stay valid.
                self._data.__dict__.update(snapshot.__dict__)
                raise
            self._commit()

    def _commit(self) -> None:
        """Hook called after a transaction completes successfully."""

    def get_network(self, name: str) -> NetworkInfo:
        with self.transaction() as tx:
            return tx.get_network(name)


class JsonFileStore(MemoryStore):
    """Store persisted to a JSON file after every committed transaction."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = Path(path)
        if self._path.exists():
            self._data = self._load()

    def _load(self) -> _Data:
        payload = json.loads(self._path.read_text())
        if not isinstance(payload, dict):
            raise ValueError(f"store file {self._path} must contain a mapping")

        data = _Data(next_id=int(payload.get("next_id", 1)))
        for entry in payload.get("networks", []):
            info = NetworkInfo(
                id=int(entry["id"]),
                name=str(entry["name"]),
                type=str(entry["type"]),
                description=str(entry.get("description", "")),
                config={str(k): str(v) for k, v in entry.get("config", {}).items()},
                status=NetworkStatus(entry.get("status", NetworkStatus.PENDING.value)),
            )
            data.networks[info.id] = info
            data.next_id = max(data.next_id, info.id + 1)
        data.users = {
            str(name): [str(user) for user in users]
            for name, users in payload.get("users", {}).items()
        }
        LOG.debug("Loaded %d networks from %s", len(data.networks), self._path)
        return data

    def _dump(self) -> dict:
        return {
            "next_id": self._data.next_id,
            "networks": [
                {
                    "id": info.id,
                    "name": info.name,
                    "type": info.type,
                    "description": info.description,
                    "config": info.config,
                    "status": info.status.value,
                }
                for info in sorted(self._data.networks.values(), key=lambda i: i.id)
            ],
            "users": self._data.users,
        }

    def _commit(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._dump(), indent=2, sort_keys=True))
        os.replace(tmp_path, self._path)


def open_store(path: Optional[Path]) -> MemoryStore:
    """Return a file backed store for ``path`` or a memory store if unset."""

    if path is None:
        return MemoryStore()
    return JsonFileStore(path)
