"""Packet capture layer."""

from .interface_manager import InterfaceManager, InterfaceInfo
from .engine import CaptureEngine, CaptureStats, decode_packet

__all__ = [
    "InterfaceManager",
    "InterfaceInfo",
    "CaptureEngine",
    "CaptureStats",
    "decode_packet",
]
