"""Capacity and idle-time eviction around any flow table."""

import logging
import time
from collections import OrderedDict
from threading import RLock
from typing import Dict, List, Optional, Tuple

from ..errors import StoreError
from ..models.datagram import Datagram
from ..models.connection import ConnectionState, Endpoint, FlowIdentity, UpdateResult
from .flow_table import FlowTable

log = logging.getLogger(__name__)


class EvictingFlowTable(FlowTable):
    """
    Decorator bounding an inner flow table.

    - max_flows: least recently updated flows are evicted when a new flow
      pushes the table over capacity (0 = unbounded)
    - idle_timeout: sweep() removes flows with no traffic for that many
      seconds (0 = never)

    Bookkeeping and the inner call share one lock, so the inner table's
    single-creation guarantee holds.
    """

    def __init__(
        self,
        inner: FlowTable,
        max_flows: int = 10000,
        idle_timeout: float = 300.0,
    ):
        self.inner = inner
        self.max_flows = max_flows
        self.idle_timeout = idle_timeout

        # key -> last activity, oldest first
        self._recency: "OrderedDict[str, float]" = OrderedDict()
        self._lock = RLock()
        self.evicted = 0

        for key, state in sorted(inner.snapshot().items(), key=lambda x: x[1].last_seen):
            self._recency[key] = state.last_seen

    def _touch(self, key: str, when: float) -> None:
        self._recency[key] = when
        self._recency.move_to_end(key)

    def _enforce_capacity(self, keep: str) -> None:
        if not self.max_flows:
            return
        while len(self._recency) > self.max_flows:
            oldest = next(iter(self._recency))
            if oldest == keep:
                break
            try:
                self._evict(oldest)
            except StoreError as e:
                # Retried on the next creation
                log.warning("Could not evict flow %s: %s", oldest, e)
                break

    def _evict(self, key: str) -> bool:
        removed = self.inner.remove(key)
        self._recency.pop(key, None)
        if not removed:
            return False
        self.evicted += 1
        log.debug("Evicted flow %s", key)
        return True

    def get_or_create(
        self, key: str, a_endpoint: Endpoint, z_endpoint: Endpoint
    ) -> Tuple[ConnectionState, bool]:
        with self._lock:
            state, created = self.inner.get_or_create(key, a_endpoint, z_endpoint)
            self._touch(key, state.last_seen)
            if created:
                self._enforce_capacity(keep=key)
            return state, created

    def update(
        self, identity: FlowIdentity, datagram: Datagram, count_syn: bool
    ) -> UpdateResult:
        with self._lock:
            result = self.inner.update(identity, datagram, count_syn)
            self._touch(result.key, datagram.timestamp or time.time())
            if result.created:
                self._enforce_capacity(keep=result.key)
            return result

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove flows idle longer than idle_timeout. Returns count removed."""
        if not self.idle_timeout:
            return 0
        now = now if now is not None else time.time()
        removed = 0
        with self._lock:
            expired = [
                key for key, seen in self._recency.items()
                if now - seen > self.idle_timeout
            ]
            for key in expired:
                try:
                    if self._evict(key):
                        removed += 1
                except StoreError as e:
                    log.warning("Idle sweep stopped at %s: %s", key, e)
                    break
        if removed:
            log.info("Expired %d idle flows", removed)
        return removed

    def get(self, key: str) -> Optional[ConnectionState]:
        return self.inner.get(key)

    def snapshot(self) -> Dict[str, ConnectionState]:
        return self.inner.snapshot()

    def keys(self) -> List[str]:
        return self.inner.keys()

    def remove(self, key: str) -> bool:
        with self._lock:
            removed = self.inner.remove(key)
            self._recency.pop(key, None)
            return removed

    def close(self) -> None:
        self.inner.close()

    def __len__(self) -> int:
        return len(self.inner)

    def __contains__(self, key: str) -> bool:
        return key in self.inner
