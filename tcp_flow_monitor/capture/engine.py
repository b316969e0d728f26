"""Packet capture engine using Scapy."""

import logging
import threading
import time
from dataclasses import dataclass
from queue import Empty, Full, Queue
from typing import Optional

from scapy.all import IP, TCP, Padding, conf, sniff

from ..errors import CaptureError
from ..models.datagram import Datagram

log = logging.getLogger(__name__)


@dataclass
class CaptureStats:
    """Statistics for packet capture."""
    packets_seen: int = 0
    datagrams_decoded: int = 0
    packets_dropped: int = 0
    bytes_captured: int = 0
    start_time: float = 0.0

    @property
    def duration(self) -> float:
        if self.start_time == 0:
            return 0.0
        return time.time() - self.start_time

    @property
    def packets_per_second(self) -> float:
        if self.duration == 0:
            return 0.0
        return self.packets_seen / self.duration


def _payload_length(ip_layer, tcp) -> int:
    """TCP payload length from the headers, excluding link-layer padding."""
    if ip_layer.len is not None and ip_layer.ihl is not None and tcp.dataofs is not None:
        return max(0, ip_layer.len - ip_layer.ihl * 4 - tcp.dataofs * 4)
    # Built locally rather than captured; lengths not computed yet
    length = len(tcp.payload)
    if tcp.haslayer(Padding):
        length -= len(tcp[Padding])
    return max(0, length)


def decode_packet(pkt, interface: Optional[str] = None) -> Optional[Datagram]:
    """
    Extract a Datagram from a Scapy packet.
    Returns None for anything that is not TCP over IPv4.
    """
    if not pkt.haslayer(IP) or not pkt.haslayer(TCP):
        return None

    ip_layer = pkt[IP]
    tcp = pkt[TCP]

    timestamp = float(getattr(pkt, "time", 0.0) or time.time())

    return Datagram(
        src_ip=ip_layer.src,
        src_port=int(tcp.sport),
        dst_ip=ip_layer.dst,
        dst_port=int(tcp.dport),
        payload_bytes=_payload_length(ip_layer, tcp),
        seq_num=int(tcp.seq),
        ack_num=int(tcp.ack),
        flags=int(tcp.flags),
        data_offset=int(tcp.dataofs or 5),
        timestamp=timestamp,
        interface=interface,
    )


class CaptureEngine:
    """
    Live TCP capture on one interface.

    Scapy sniffs on a background thread and queues decoded datagrams in
    capture order. A failure of the sniffer is remembered and raised as
    CaptureError from get_datagram().
    """

    def __init__(
        self,
        interface: str,
        bpf_filter: str = "tcp",
        queue_size: int = 10000,
        promiscuous: bool = True,
    ):
        self.interface = interface
        self.bpf_filter = bpf_filter
        self.promiscuous = promiscuous
        self._max_queue_size = queue_size

        self._running = False
        self._capture_thread: Optional[threading.Thread] = None
        self._queue: Queue = Queue(maxsize=queue_size)
        self._stats = CaptureStats()
        self._stats_lock = threading.Lock()
        self._error: Optional[BaseException] = None

        self._configure_scapy()

    def _configure_scapy(self) -> None:
        """Apply Scapy configuration."""
        conf.verb = 0
        conf.promisc = self.promiscuous

    def start(self) -> None:
        """Start packet capture."""
        if self._running:
            return

        self._running = True
        self._error = None
        self._stats = CaptureStats(start_time=time.time())

        self._capture_thread = threading.Thread(
            target=self._capture_loop,
            daemon=True,
            name=f"capture-{self.interface}",
        )
        self._capture_thread.start()
        log.info("Capture started on %s (filter=%r)", self.interface, self.bpf_filter)

    def stop(self) -> None:
        """Stop the capture thread."""
        self._running = False
        if self._capture_thread:
            self._capture_thread.join(timeout=2.0)
            self._capture_thread = None

    def _on_packet(self, pkt) -> None:
        if not self._running:
            return

        with self._stats_lock:
            self._stats.packets_seen += 1
            self._stats.bytes_captured += len(pkt)

        datagram = decode_packet(pkt, self.interface)
        if datagram is None:
            return

        try:
            self._queue.put_nowait(datagram)
        except Full:
            with self._stats_lock:
                self._stats.packets_dropped += 1
            return

        with self._stats_lock:
            self._stats.datagrams_decoded += 1

    def _capture_loop(self) -> None:
        """Capture loop for the interface."""
        try:
            sniff(
                iface=self.interface,
                filter=self.bpf_filter or None,
                prn=self._on_packet,
                store=False,
                stop_filter=lambda _: not self._running,
            )
        except Exception as e:
            log.error("Capture error on %s: %s", self.interface, e)
            self._error = e
        finally:
            if self._running and self._error is None:
                self._error = CaptureError(f"capture on {self.interface} ended unexpectedly")
            self._running = False

    def get_datagram(self, timeout: Optional[float] = None) -> Optional[Datagram]:
        """
        Get the next datagram, blocking up to timeout (None = forever).

        Raises CaptureError once the sniffer has failed and the queue is
        drained.
        """
        while True:
            wait = 0.5 if timeout is None else timeout
            try:
                return self._queue.get(timeout=wait)
            except Empty:
                if self._error is not None:
                    raise CaptureError(str(self._error)) from self._error
                if timeout is not None:
                    return None

    def get_stats(self) -> CaptureStats:
        """Get capture statistics."""
        with self._stats_lock:
            return CaptureStats(
                packets_seen=self._stats.packets_seen,
                datagrams_decoded=self._stats.datagrams_decoded,
                packets_dropped=self._stats.packets_dropped,
                bytes_captured=self._stats.bytes_captured,
                start_time=self._stats.start_time,
            )

    def is_running(self) -> bool:
        """Check if capture is running."""
        return self._running

    @property
    def current_queue_size(self) -> int:
        """Get current queue size."""
        return self._queue.qsize()
