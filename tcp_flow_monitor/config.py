"""Configuration management for the flow monitor."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional
from pathlib import Path
from urllib.parse import urlparse
import os

import yaml

from .errors import ConfigError
from .processing.ingestion import SYN_COUNT_MODES


STORE_BACKENDS = ("memory", "redis")


@dataclass
class CaptureConfig:
    """Capture configuration."""
    interface: str = ""
    local_ip: str = ""  # empty = resolve from interface
    address_filter: str = "*"
    bpf_filter: str = "tcp"
    buffer_size: int = 10000
    promiscuous: bool = True


@dataclass
class TrackingConfig:
    """Flow tracking configuration."""
    syn_threshold: int = 3
    syn_count_mode: str = "syn_only"
    max_flows: int = 10000  # 0 = unbounded
    idle_timeout: float = 300.0  # seconds, 0 = never expire
    sweep_interval: float = 30.0
    excluded_ports: List[int] = field(default_factory=list)


@dataclass
class StoreConfig:
    """Backing store configuration."""
    backend: str = "memory"
    redis_url: str = "redis://127.0.0.1:6379/0"
    key_prefix: str = "flow:"
    timeout: float = 1.0
    exclude_own_traffic: bool = True

    @property
    def redis_port(self) -> int:
        return urlparse(self.redis_url).port or 6379


@dataclass
class ApiConfig:
    """HTTP query surface configuration."""
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8000
    geo_lookup: bool = True
    geo_timeout: float = 3.0


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class MonitorConfig:
    """Main configuration container."""
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorConfig":
        """Create config from dictionary."""
        config = cls()

        if "capture" in data:
            cap = data["capture"] or {}
            config.capture = CaptureConfig(
                interface=cap.get("interface", ""),
                local_ip=cap.get("local_ip", ""),
                address_filter=cap.get("address_filter", "*"),
                bpf_filter=cap.get("bpf_filter", "tcp"),
                buffer_size=cap.get("buffer_size", 10000),
                promiscuous=cap.get("promiscuous", True),
            )

        if "tracking" in data:
            trk = data["tracking"] or {}
            config.tracking = TrackingConfig(
                syn_threshold=trk.get("syn_threshold", 3),
                syn_count_mode=trk.get("syn_count_mode", "syn_only"),
                max_flows=trk.get("max_flows", 10000),
                idle_timeout=trk.get("idle_timeout", 300.0),
                sweep_interval=trk.get("sweep_interval", 30.0),
                excluded_ports=list(trk.get("excluded_ports", [])),
            )

        if "store" in data:
            st = data["store"] or {}
            config.store = StoreConfig(
                backend=st.get("backend", "memory"),
                redis_url=st.get("redis_url", "redis://127.0.0.1:6379/0"),
                key_prefix=st.get("key_prefix", "flow:"),
                timeout=st.get("timeout", 1.0),
                exclude_own_traffic=st.get("exclude_own_traffic", True),
            )

        if "api" in data:
            api = data["api"] or {}
            config.api = ApiConfig(
                enabled=api.get("enabled", True),
                host=api.get("host", "127.0.0.1"),
                port=api.get("port", 8000),
                geo_lookup=api.get("geo_lookup", True),
                geo_timeout=api.get("geo_timeout", 3.0),
            )

        if "logging" in data:
            lg = data["logging"] or {}
            config.logging = LoggingConfig(
                level=lg.get("level", "INFO"),
                file=lg.get("file"),
            )

        return config

    @classmethod
    def from_yaml(cls, path: str) -> "MonitorConfig":
        """Load config from YAML file."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        return cls.from_dict(data or {})

    @classmethod
    def load(cls, path: Optional[str] = None) -> "MonitorConfig":
        """Load config from file or use defaults."""
        if path and not os.path.exists(path):
            raise ConfigError(f"Config file not found: {path}")

        search_paths = [
            path,
            "config.yaml",
            "config.yml",
            os.path.expanduser("~/.config/tcp-flow-monitor/config.yaml"),
            "/etc/tcp-flow-monitor/config.yaml",
        ]

        for config_path in search_paths:
            if config_path and os.path.exists(config_path):
                return cls.from_yaml(config_path)

        return cls()

    def validate(self) -> None:
        """Raise ConfigError on invalid values."""
        if self.store.backend not in STORE_BACKENDS:
            raise ConfigError(
                f"Unknown store backend {self.store.backend!r}, expected one of {STORE_BACKENDS}"
            )
        if self.tracking.syn_count_mode not in SYN_COUNT_MODES:
            raise ConfigError(
                f"Unknown SYN count mode {self.tracking.syn_count_mode!r}, "
                f"expected one of {SYN_COUNT_MODES}"
            )
        if self.tracking.syn_threshold < 1:
            raise ConfigError("tracking.syn_threshold must be at least 1")
        if self.tracking.max_flows < 0 or self.tracking.idle_timeout < 0:
            raise ConfigError("tracking.max_flows and tracking.idle_timeout must not be negative")
        if self.store.timeout <= 0:
            raise ConfigError("store.timeout must be positive")
        if not 0 < self.api.port < 65536:
            raise ConfigError(f"Invalid API port {self.api.port}")

    def excluded_ports(self) -> List[int]:
        """Ports never tracked, including the backing store's own."""
        ports = list(self.tracking.excluded_ports)
        if self.store.backend == "redis" and self.store.exclude_own_traffic:
            if self.store.redis_port not in ports:
                ports.append(self.store.redis_port)
        return ports

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "capture": asdict(self.capture),
            "tracking": asdict(self.tracking),
            "store": asdict(self.store),
            "api": asdict(self.api),
            "logging": asdict(self.logging),
        }

    def save_yaml(self, path: str) -> None:
        """Save config to YAML file."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)
