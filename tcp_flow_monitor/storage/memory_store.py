"""In-process flow table."""

from threading import Lock
from typing import Dict, List, Optional, Tuple

from ..models.datagram import Datagram
from ..models.connection import ConnectionState, Endpoint, FlowIdentity, UpdateResult
from .flow_table import FlowTable


class InMemoryFlowTable(FlowTable):
    """
    Flow table backed by a dict.
    Each operation holds the lock exactly once, readers receive copies.
    """

    def __init__(self):
        self._flows: Dict[str, ConnectionState] = {}
        self._lock = Lock()

    def _get_or_create_locked(
        self, key: str, a_endpoint: Endpoint, z_endpoint: Endpoint, when: Optional[float] = None
    ) -> Tuple[ConnectionState, bool]:
        state = self._flows.get(key)
        if state is not None:
            return state, False
        state = self._new_state(a_endpoint, z_endpoint, when)
        self._flows[key] = state
        return state, True

    def get_or_create(
        self, key: str, a_endpoint: Endpoint, z_endpoint: Endpoint
    ) -> Tuple[ConnectionState, bool]:
        with self._lock:
            state, created = self._get_or_create_locked(key, a_endpoint, z_endpoint)
            return state.copy(), created

    def update(
        self, identity: FlowIdentity, datagram: Datagram, count_syn: bool
    ) -> UpdateResult:
        key = identity.key
        with self._lock:
            state, created = self._get_or_create_locked(
                key, identity.a_endpoint, identity.z_endpoint, datagram.timestamp
            )
            counter = state.apply(identity.direction, datagram, count_syn)
            return UpdateResult(
                key=key,
                direction=identity.direction,
                created=created,
                syn_counter=counter,
                syn_counted=count_syn,
                state=state.copy(),
            )

    def get(self, key: str) -> Optional[ConnectionState]:
        with self._lock:
            state = self._flows.get(key)
            return state.copy() if state is not None else None

    def snapshot(self) -> Dict[str, ConnectionState]:
        with self._lock:
            return {key: state.copy() for key, state in self._flows.items()}

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._flows.keys())

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._flows.pop(key, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._flows)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._flows
