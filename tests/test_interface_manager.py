import socket
from collections import namedtuple

import psutil
import pytest

from tcp_flow_monitor import cli
from tcp_flow_monitor.capture.interface_manager import InterfaceManager
from tcp_flow_monitor.config import MonitorConfig
from tcp_flow_monitor.errors import ConfigError

Stat = namedtuple("Stat", "isup speed mtu")
Addr = namedtuple("Addr", "family address netmask")


@pytest.fixture
def interfaces(monkeypatch):
    stats = {
        "lo": Stat(True, 0, 65536),
        "eth0": Stat(True, 1000, 1500),
        "wlan0": Stat(False, 0, 1500),
    }
    addrs = {
        "lo": [Addr(socket.AF_INET, "127.0.0.1", "255.0.0.0")],
        "eth0": [
            Addr(psutil.AF_LINK, "aa:bb:cc:dd:ee:ff", None),
            Addr(socket.AF_INET, "10.0.0.5", "255.255.255.0"),
        ],
        "wlan0": [],
    }
    monkeypatch.setattr(psutil, "net_if_stats", lambda: stats)
    monkeypatch.setattr(psutil, "net_if_addrs", lambda: addrs)


def test_discovery(interfaces):
    mgr = InterfaceManager()

    assert [i.name for i in mgr.get_all()] == ["eth0", "lo", "wlan0"]
    assert [i.name for i in mgr.get_active()] == ["eth0"]

    eth0 = mgr.get_by_name("eth0")
    assert eth0.mac_address == "aa:bb:cc:dd:ee:ff"
    assert eth0.speed_mbps == 1000
    assert mgr.get_local_ipv4("eth0") == "10.0.0.5"
    assert mgr.get_local_ipv4("wlan0") is None
    assert not mgr.exists("eth9")


def test_capture_target_auto_detected(interfaces):
    config = MonitorConfig()
    cli.resolve_capture_target(config)

    assert config.capture.interface == "eth0"
    assert config.capture.local_ip == "10.0.0.5"


def test_explicit_local_ip_kept(interfaces):
    config = MonitorConfig.from_dict({"capture": {"interface": "eth0", "local_ip": "192.0.2.1"}})
    cli.resolve_capture_target(config)
    assert config.capture.local_ip == "192.0.2.1"


def test_interface_without_address_rejected(interfaces):
    config = MonitorConfig.from_dict({"capture": {"interface": "wlan0"}})
    with pytest.raises(ConfigError):
        cli.resolve_capture_target(config)


def test_unknown_interface_rejected(interfaces):
    config = MonitorConfig.from_dict({"capture": {"interface": "eth9"}})
    with pytest.raises(ConfigError):
        cli.resolve_capture_target(config)
