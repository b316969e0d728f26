"""Data models for the flow monitor."""

from .datagram import Datagram, TCPFlags
from .connection import (
    ConnectionState,
    Endpoint,
    FlowDirection,
    FlowIdentity,
    UpdateResult,
    make_flow_key,
)

__all__ = [
    "Datagram",
    "TCPFlags",
    "ConnectionState",
    "Endpoint",
    "FlowDirection",
    "FlowIdentity",
    "UpdateResult",
    "make_flow_key",
]
