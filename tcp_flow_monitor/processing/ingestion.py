"""Ingestion loop: capture source -> flow identity -> flow table."""

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from threading import Event, Lock, Thread
from typing import Callable, Iterable, List, Optional

from ..errors import CaptureError, StoreError
from ..models.datagram import Datagram
from ..models.connection import UpdateResult
from ..storage.flow_table import FlowTable
from .flow_resolver import resolve_flow

log = logging.getLogger(__name__)

SYN_ONLY = "syn_only"
ALL_SEGMENTS = "all_segments"
SYN_COUNT_MODES = (SYN_ONLY, ALL_SEGMENTS)


class IngestionState(Enum):
    """Lifecycle of the ingestion loop."""
    IDLE = "idle"
    RECEIVING = "receiving"
    FILTERED = "filtered"
    TRACKED = "tracked"
    FAILED = "failed"


@dataclass
class IngestionStats:
    """Counters for the ingestion loop."""
    received: int = 0
    filtered: int = 0
    excluded: int = 0
    unidentified: int = 0
    tracked: int = 0
    flows_created: int = 0
    store_errors: int = 0
    syn_alerts: int = 0
    start_time: float = 0.0

    @property
    def duration(self) -> float:
        if self.start_time == 0:
            return 0.0
        return time.time() - self.start_time

    @property
    def datagrams_per_second(self) -> float:
        if self.duration == 0:
            return 0.0
        return self.received / self.duration

    def to_dict(self) -> dict:
        return {
            "received": self.received,
            "filtered": self.filtered,
            "excluded": self.excluded,
            "unidentified": self.unidentified,
            "tracked": self.tracked,
            "flows_created": self.flows_created,
            "store_errors": self.store_errors,
            "syn_alerts": self.syn_alerts,
            "duration": round(self.duration, 3),
        }


class IngestionLoop:
    """
    Single writer of the flow table.

    Pulls datagrams one at a time from the capture source, drops those
    outside the address filter or on excluded ports, resolves the flow and
    applies the update. A failed store update is dropped and ingestion
    carries on; a failed capture source is fatal.
    """

    def __init__(
        self,
        source,
        table: FlowTable,
        local_ip: str,
        address_filter: str = "*",
        excluded_ports: Iterable[int] = (),
        syn_threshold: int = 3,
        syn_count_mode: str = SYN_ONLY,
        sweep_interval: float = 30.0,
    ):
        if syn_count_mode not in SYN_COUNT_MODES:
            raise ValueError(f"Unknown SYN count mode: {syn_count_mode}")

        self.source = source
        self.table = table
        self.local_ip = local_ip
        self.address_filter = address_filter or "*"
        self.excluded_ports = frozenset(int(p) for p in excluded_ports)
        self.syn_threshold = syn_threshold
        self.syn_count_mode = syn_count_mode
        self.sweep_interval = sweep_interval

        self.state = IngestionState.IDLE
        self._stats = IngestionStats()
        self._stats_lock = Lock()
        self._tracked_count = 0
        self._latest_key: Optional[str] = None

        self._running = False
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._failure: Optional[CaptureError] = None

        self._alert_callbacks: List[Callable[[UpdateResult], None]] = []

    def add_alert_callback(self, callback: Callable[[UpdateResult], None]) -> None:
        """Add callback invoked when a SYN counter reaches the threshold."""
        self._alert_callbacks.append(callback)

    # Filtering

    def _passes_address_filter(self, datagram: Datagram) -> bool:
        if self.address_filter == "*":
            return True
        return self.address_filter in datagram.flow_string

    def _is_excluded(self, datagram: Datagram) -> bool:
        return (
            datagram.src_port in self.excluded_ports
            or datagram.dst_port in self.excluded_ports
        )

    def _should_count_syn(self, datagram: Datagram) -> bool:
        if self.syn_count_mode == ALL_SEGMENTS:
            return True
        return datagram.is_syn()

    # Processing

    def process(self, datagram: Datagram) -> Optional[UpdateResult]:
        """
        Process one datagram.
        Returns the table update, or None if the datagram was not tracked.
        """
        self.state = IngestionState.RECEIVING
        with self._stats_lock:
            self._stats.received += 1

        if not self._passes_address_filter(datagram):
            log.debug("Filtered %s", datagram.flow_string)
            self._drop("filtered")
            return None

        if self._is_excluded(datagram):
            log.debug("Skipped backing-store packet %s", datagram.flow_string)
            self._drop("excluded")
            return None

        identity = resolve_flow(datagram, self.local_ip)
        if identity is None:
            self._drop("unidentified")
            return None

        try:
            result = self.table.update(identity, datagram, self._should_count_syn(datagram))
        except StoreError as e:
            log.warning("%s | update dropped: %s", identity.key, e)
            with self._stats_lock:
                self._stats.store_errors += 1
            self.state = IngestionState.FILTERED
            return None

        with self._stats_lock:
            self._stats.tracked += 1
            self._tracked_count += 1
            self._latest_key = result.key
            if result.created:
                self._stats.flows_created += 1

        if result.created:
            log.debug("New flow %s", identity)

        self._check_threshold(result)
        self.state = IngestionState.TRACKED
        return result

    def _drop(self, reason: str) -> None:
        with self._stats_lock:
            setattr(self._stats, reason, getattr(self._stats, reason) + 1)
        self.state = IngestionState.FILTERED

    def _check_threshold(self, result: UpdateResult) -> None:
        """Warn once when a direction's SYN counter reaches the threshold."""
        if not result.syn_counted or result.syn_counter != self.syn_threshold:
            return

        log.warning(
            "%s | %s | %d unanswered SYN packets",
            result.key, result.direction.description, result.syn_counter,
        )
        with self._stats_lock:
            self._stats.syn_alerts += 1

        for callback in self._alert_callbacks:
            try:
                callback(result)
            except Exception:
                log.exception("SYN alert callback failed")

    # Loop control

    def run(self) -> None:
        """
        Process datagrams until stop() is called.
        Raises CaptureError if the capture source fails.
        """
        self._running = True
        self._stop_event.clear()
        self._loop()

    def _loop(self) -> None:
        if self._stop_event.is_set():
            # stop() arrived before the loop began
            self._running = False
            return

        with self._stats_lock:
            self._stats = IngestionStats(start_time=time.time())
        self.state = IngestionState.RECEIVING

        if hasattr(self.source, "start"):
            self.source.start()

        last_sweep = time.time()

        try:
            while self._running and not self._stop_event.is_set():
                datagram = self.source.get_datagram(timeout=0.5)
                if datagram is not None:
                    self.process(datagram)

                now = time.time()
                if self.sweep_interval and now - last_sweep >= self.sweep_interval:
                    self._sweep(now)
                    last_sweep = now
        except CaptureError as e:
            self.state = IngestionState.FAILED
            self._failure = e
            log.critical("Capture source failed: %s", e)
            raise
        finally:
            self._running = False

    def _sweep(self, now: float) -> None:
        try:
            self.table.sweep(now)
        except StoreError as e:
            log.warning("Flow sweep failed: %s", e)

    def _run_in_thread(self) -> None:
        try:
            self._loop()
        except CaptureError:
            # Already logged; is_failed() reports it to the owner
            pass

    def start(self) -> None:
        """Run the loop on a background thread."""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self._thread = Thread(
            target=self._run_in_thread,
            daemon=True,
            name="flow-ingestion",
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the loop and the capture source."""
        self._running = False
        self._stop_event.set()
        if hasattr(self.source, "stop"):
            self.source.stop()
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self.state is not IngestionState.FAILED:
            self.state = IngestionState.IDLE

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the background loop exits."""
        if self._thread:
            self._thread.join(timeout)

    # Accessors

    def is_running(self) -> bool:
        return self._running

    def is_failed(self) -> bool:
        return self._failure is not None

    @property
    def failure(self) -> Optional[CaptureError]:
        return self._failure

    @property
    def latest_key(self) -> Optional[str]:
        with self._stats_lock:
            return self._latest_key

    def tracked_count(self) -> int:
        with self._stats_lock:
            return self._tracked_count

    def reset_count(self) -> int:
        with self._stats_lock:
            self._tracked_count = 0
            return self._tracked_count

    def get_stats(self) -> IngestionStats:
        with self._stats_lock:
            return replace(self._stats)
