"""Network interface discovery."""

import socket
from dataclasses import dataclass
from typing import Dict, List, Optional

import psutil


@dataclass
class InterfaceInfo:
    """Information about a network interface."""
    name: str
    mac_address: Optional[str]
    ipv4_address: Optional[str]
    ipv4_netmask: Optional[str]
    is_up: bool
    is_loopback: bool
    speed_mbps: Optional[int]
    mtu: Optional[int]

    def __str__(self) -> str:
        status = "UP" if self.is_up else "DOWN"
        addr = self.ipv4_address or "no address"
        return f"{self.name} ({addr}) [{status}]"


class InterfaceManager:
    """Enumerates network interfaces and their IPv4 addresses."""

    def __init__(self):
        self._interfaces: Dict[str, InterfaceInfo] = {}
        self.refresh()

    def refresh(self) -> None:
        """Refresh the list of network interfaces."""
        self._interfaces.clear()

        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()

        for name, stat in stats.items():
            ipv4_addr = None
            ipv4_mask = None
            mac_addr = None

            for addr in addrs.get(name, []):
                if addr.family == socket.AF_INET and ipv4_addr is None:
                    ipv4_addr = addr.address
                    ipv4_mask = addr.netmask
                elif addr.family == psutil.AF_LINK:
                    mac_addr = addr.address

            is_loopback = name.lower().startswith("lo") or ipv4_addr == "127.0.0.1"

            self._interfaces[name] = InterfaceInfo(
                name=name,
                mac_address=mac_addr,
                ipv4_address=ipv4_addr,
                ipv4_netmask=ipv4_mask,
                is_up=stat.isup,
                is_loopback=is_loopback,
                speed_mbps=stat.speed if stat.speed > 0 else None,
                mtu=getattr(stat, "mtu", None),
            )

    def get_all(self) -> List[InterfaceInfo]:
        """Get all network interfaces."""
        return sorted(self._interfaces.values(), key=lambda x: x.name)

    def get_active(self) -> List[InterfaceInfo]:
        """Get only active (UP) interfaces with IPv4 addresses."""
        return [
            iface for iface in self.get_all()
            if iface.is_up and iface.ipv4_address and not iface.is_loopback
        ]

    def get_by_name(self, name: str) -> Optional[InterfaceInfo]:
        """Get interface by name."""
        return self._interfaces.get(name)

    def exists(self, name: str) -> bool:
        """Check if interface exists."""
        return name in self._interfaces

    def get_local_ipv4(self, name: str) -> Optional[str]:
        """IPv4 address of an interface, None if it has none."""
        info = self.get_by_name(name)
        return info.ipv4_address if info else None
