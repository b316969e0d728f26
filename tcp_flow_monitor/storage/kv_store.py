"""Key-value backing store interface and the flow table built on it."""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..models.datagram import Datagram
from ..models.connection import ConnectionState, Endpoint, FlowIdentity, UpdateResult
from .flow_table import FlowTable


class KeyValueStore(ABC):
    """
    Hash-per-key store reached over the network.

    Every method may raise StoreError.
    """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether key exists."""

    @abstractmethod
    def create(self, key: str, fields: Mapping[str, Any]) -> bool:
        """Create key with fields unless it exists. Returns True if created."""

    @abstractmethod
    def increment_field(self, key: str, field: str, by: int = 1) -> int:
        """Add to an integer field, returning the new value."""

    @abstractmethod
    def set_field(self, key: str, field: str, value: Any) -> None:
        """Overwrite one field."""

    @abstractmethod
    def get_fields(self, key: str) -> Dict[str, str]:
        """Get all fields of key, empty if missing."""

    @abstractmethod
    def list_keys(self) -> List[str]:
        """List all keys."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key. Returns True if it existed."""

    def update_fields(
        self,
        key: str,
        increments: Mapping[str, int],
        values: Mapping[str, Any],
    ) -> Dict[str, int]:
        """
        Apply several increments and overwrites to one key.

        Returns the post-increment value of every incremented field.
        Stores that can batch round trips should override this.
        """
        results = {}
        for field, by in increments.items():
            results[field] = self.increment_field(key, field, by)
        for field, value in values.items():
            self.set_field(key, field, value)
        return results

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


class KeyValueFlowTable(FlowTable):
    """
    Flow table persisted in a KeyValueStore.

    Nothing is cached locally: every mutation is a read-modify-write issued
    against the store's current value, and creation relies on the store's
    create-if-absent. A failing store surfaces StoreError to the caller.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _initial_fields(state: ConnectionState) -> Dict[str, Any]:
        fields = state.to_dict()
        fields.pop("key")
        return fields

    def _create(
        self, key: str, a_endpoint: Endpoint, z_endpoint: Endpoint, when: Optional[float] = None
    ) -> bool:
        state = self._new_state(a_endpoint, z_endpoint, when)
        return self.store.create(key, self._initial_fields(state))

    def get_or_create(
        self, key: str, a_endpoint: Endpoint, z_endpoint: Endpoint
    ) -> Tuple[ConnectionState, bool]:
        created = self._create(key, a_endpoint, z_endpoint)
        state = self.get(key)
        if state is None:
            # Removed between create and read
            state = self._new_state(a_endpoint, z_endpoint)
        return state, created

    def update(
        self, identity: FlowIdentity, datagram: Datagram, count_syn: bool
    ) -> UpdateResult:
        key = identity.key
        created = self._create(
            key, identity.a_endpoint, identity.z_endpoint, datagram.timestamp
        )

        prefix = identity.direction.value
        syn_field = f"{prefix}_syn_counter"
        increments = {
            f"{prefix}_bytes": datagram.payload_bytes,
            f"{prefix}_packets": 1,
            # Incrementing by zero reads the current value in the same batch
            syn_field: 1 if count_syn else 0,
        }
        values = {
            f"{prefix}_last_seq": datagram.seq_num,
            f"{prefix}_last_ack": datagram.ack_num,
            "last_seen": datagram.timestamp or time.time(),
        }
        results = self.store.update_fields(key, increments, values)

        return UpdateResult(
            key=key,
            direction=identity.direction,
            created=created,
            syn_counter=int(results[syn_field]),
            syn_counted=count_syn,
        )

    def get(self, key: str) -> Optional[ConnectionState]:
        data = self.store.get_fields(key)
        if not data or "a_endpoint" not in data:
            return None
        return ConnectionState.from_dict(data)

    def snapshot(self) -> Dict[str, ConnectionState]:
        flows = {}
        for key in self.store.list_keys():
            state = self.get(key)
            if state is not None:
                flows[key] = state
        return flows

    def keys(self) -> List[str]:
        return self.store.list_keys()

    def remove(self, key: str) -> bool:
        return self.store.delete(key)

    def __contains__(self, key: str) -> bool:
        return self.store.exists(key)

    def close(self) -> None:
        self.store.close()
