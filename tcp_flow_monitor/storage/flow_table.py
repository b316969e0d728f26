"""Flow table interface shared by all backing stores."""

import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from ..models.datagram import Datagram
from ..models.connection import ConnectionState, Endpoint, FlowIdentity, UpdateResult


class FlowTable(ABC):
    """
    Keyed store of ConnectionState, safe for one writer and many readers.

    The table owns every ConnectionState. Everything handed out to callers
    is a copy, so readers never observe a connection mid-update.
    """

    @abstractmethod
    def get_or_create(
        self, key: str, a_endpoint: Endpoint, z_endpoint: Endpoint
    ) -> Tuple[ConnectionState, bool]:
        """
        Get the connection for key, creating it if absent.

        Atomic: exactly one caller observes created=True for a given key.
        """

    @abstractmethod
    def update(
        self, identity: FlowIdentity, datagram: Datagram, count_syn: bool
    ) -> UpdateResult:
        """Get-or-create the flow and apply one datagram to it."""

    @abstractmethod
    def get(self, key: str) -> Optional[ConnectionState]:
        """Get a copy of one connection."""

    @abstractmethod
    def snapshot(self) -> Dict[str, ConnectionState]:
        """Get copies of all connections keyed by flow key."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Get all flow keys."""

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Remove a connection. Returns True if it existed."""

    def sweep(self, now: Optional[float] = None) -> int:
        """Expire stale entries. Returns count removed."""
        return 0

    def close(self) -> None:
        """Release backing-store resources."""

    def __len__(self) -> int:
        return len(self.keys())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    @staticmethod
    def _new_state(
        a_endpoint: Endpoint, z_endpoint: Endpoint, when: Optional[float] = None
    ) -> ConnectionState:
        return ConnectionState(
            a_endpoint=a_endpoint, z_endpoint=z_endpoint, first_seen=when or time.time()
        )
