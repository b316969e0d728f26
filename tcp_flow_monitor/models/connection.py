"""Flow identity and per-connection state models."""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

from .datagram import Datagram


@dataclass(frozen=True)
class Endpoint:
    """An (address, port) pair."""
    ip: str
    port: int

    @classmethod
    def parse(cls, value: str) -> "Endpoint":
        """Parse ``ip:port`` back into an Endpoint."""
        ip, _, port = value.rpartition(":")
        if not ip or not port.isdigit():
            raise ValueError(f"Invalid endpoint: {value!r}")
        return cls(ip=ip, port=int(port))

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


class FlowDirection(Enum):
    """
    Which side of the canonical pair sent a datagram.

    Endpoint A is always the peer and Z the local host, so A_TO_Z is
    traffic arriving at the local host.
    """
    A_TO_Z = "a_to_z"
    Z_TO_A = "z_to_a"

    @property
    def description(self) -> str:
        if self is FlowDirection.A_TO_Z:
            return "peer->local"
        return "local->peer"


def make_flow_key(a_endpoint: Endpoint, z_endpoint: Endpoint) -> str:
    """Canonical key shared by both directions of a flow."""
    return f"{a_endpoint}<->{z_endpoint}"


@dataclass(frozen=True)
class FlowIdentity:
    """Resolved identity of a datagram relative to the local host."""
    a_endpoint: Endpoint
    z_endpoint: Endpoint
    direction: FlowDirection

    @property
    def key(self) -> str:
        return make_flow_key(self.a_endpoint, self.z_endpoint)

    def __str__(self) -> str:
        return f"{self.key} ({self.direction.description})"


# Integer fields of ConnectionState, in serialization order
COUNTER_FIELDS = (
    "a_to_z_bytes",
    "z_to_a_bytes",
    "a_to_z_packets",
    "z_to_a_packets",
    "a_to_z_syn_counter",
    "z_to_a_syn_counter",
    "a_to_z_last_seq",
    "a_to_z_last_ack",
    "z_to_a_last_seq",
    "z_to_a_last_ack",
)

TIMESTAMP_FIELDS = ("first_seen", "last_seen")


@dataclass
class ConnectionState:
    """
    Mutable per-flow record.

    Endpoints are fixed at creation. Byte, packet and SYN counters only ever
    grow; last seq/ack hold the most recent values seen in each direction.
    """
    a_endpoint: Endpoint
    z_endpoint: Endpoint

    a_to_z_bytes: int = 0
    z_to_a_bytes: int = 0
    a_to_z_packets: int = 0
    z_to_a_packets: int = 0

    a_to_z_syn_counter: int = 0
    z_to_a_syn_counter: int = 0

    a_to_z_last_seq: int = 0
    a_to_z_last_ack: int = 0
    z_to_a_last_seq: int = 0
    z_to_a_last_ack: int = 0

    first_seen: float = field(default_factory=time.time)
    last_seen: float = 0.0

    def __post_init__(self):
        if not self.last_seen:
            self.last_seen = self.first_seen

    @property
    def key(self) -> str:
        return make_flow_key(self.a_endpoint, self.z_endpoint)

    @property
    def total_bytes(self) -> int:
        """Total payload bytes in both directions."""
        return self.a_to_z_bytes + self.z_to_a_bytes

    @property
    def total_packets(self) -> int:
        """Total segments in both directions."""
        return self.a_to_z_packets + self.z_to_a_packets

    @property
    def idle_time(self) -> float:
        """Seconds since the flow last saw traffic."""
        return time.time() - self.last_seen

    def syn_counter(self, direction: FlowDirection) -> int:
        return getattr(self, f"{direction.value}_syn_counter")

    def apply(self, direction: FlowDirection, datagram: Datagram, count_syn: bool) -> int:
        """
        Apply one observed datagram to this connection.

        Returns the direction's SYN counter after the update.
        """
        prefix = direction.value
        setattr(self, f"{prefix}_bytes", getattr(self, f"{prefix}_bytes") + datagram.payload_bytes)
        setattr(self, f"{prefix}_packets", getattr(self, f"{prefix}_packets") + 1)
        setattr(self, f"{prefix}_last_seq", datagram.seq_num)
        setattr(self, f"{prefix}_last_ack", datagram.ack_num)
        if count_syn:
            setattr(self, f"{prefix}_syn_counter", getattr(self, f"{prefix}_syn_counter") + 1)
        self.last_seen = datagram.timestamp or time.time()
        return self.syn_counter(direction)

    def copy(self) -> "ConnectionState":
        """Detached copy for readers."""
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible representation."""
        data: Dict[str, Any] = {
            "key": self.key,
            "a_endpoint": str(self.a_endpoint),
            "z_endpoint": str(self.z_endpoint),
        }
        for name in COUNTER_FIELDS + TIMESTAMP_FIELDS:
            data[name] = getattr(self, name)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionState":
        """
        Rebuild a state from ``to_dict`` output or from a key-value hash
        whose values are all strings. Missing counters default to zero.
        """
        state = cls(
            a_endpoint=Endpoint.parse(str(data["a_endpoint"])),
            z_endpoint=Endpoint.parse(str(data["z_endpoint"])),
            first_seen=float(data.get("first_seen") or 0.0),
            last_seen=float(data.get("last_seen") or 0.0),
        )
        for name in COUNTER_FIELDS:
            value = data.get(name)
            if value is not None and value != "":
                setattr(state, name, int(value))
        return state


@dataclass
class UpdateResult:
    """Outcome of applying one datagram to the flow table."""
    key: str
    direction: FlowDirection
    created: bool
    syn_counter: int
    syn_counted: bool
    state: Optional[ConnectionState] = None
