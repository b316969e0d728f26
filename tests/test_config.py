import pytest

from tcp_flow_monitor.config import MonitorConfig
from tcp_flow_monitor.errors import ConfigError


def test_defaults():
    config = MonitorConfig()
    config.validate()

    assert config.capture.address_filter == "*"
    assert config.tracking.syn_threshold == 3
    assert config.tracking.syn_count_mode == "syn_only"
    assert config.store.backend == "memory"
    assert config.excluded_ports() == []


def test_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "capture:\n"
        "  interface: eth0\n"
        "  address_filter: '93.184'\n"
        "tracking:\n"
        "  syn_threshold: 5\n"
        "  syn_count_mode: all_segments\n"
        "  excluded_ports: [22]\n"
        "store:\n"
        "  backend: redis\n"
        "  redis_url: redis://cache.local:6380/1\n"
        "api:\n"
        "  port: 9000\n"
    )

    config = MonitorConfig.load(str(path))
    config.validate()

    assert config.capture.interface == "eth0"
    assert config.capture.address_filter == "93.184"
    assert config.tracking.syn_threshold == 5
    assert config.tracking.syn_count_mode == "all_segments"
    assert config.store.redis_port == 6380
    assert config.api.port == 9000
    assert config.excluded_ports() == [22, 6380]


def test_redis_port_excluded_once():
    config = MonitorConfig.from_dict({
        "tracking": {"excluded_ports": [6379]},
        "store": {"backend": "redis"},
    })
    assert config.excluded_ports() == [6379]


def test_own_traffic_exclusion_can_be_disabled():
    config = MonitorConfig.from_dict({
        "store": {"backend": "redis", "exclude_own_traffic": False},
    })
    assert config.excluded_ports() == []


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert MonitorConfig.from_yaml(str(path)) == MonitorConfig()


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError):
        MonitorConfig.load(str(tmp_path / "nope.yaml"))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("capture: [unclosed\n")
    with pytest.raises(ConfigError):
        MonitorConfig.from_yaml(str(path))


def test_top_level_must_be_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        MonitorConfig.from_yaml(str(path))


@pytest.mark.parametrize("data", [
    {"store": {"backend": "sqlite"}},
    {"tracking": {"syn_count_mode": "sometimes"}},
    {"tracking": {"syn_threshold": 0}},
    {"tracking": {"max_flows": -1}},
    {"store": {"timeout": 0}},
    {"api": {"port": 70000}},
])
def test_validate_rejects(data):
    with pytest.raises(ConfigError):
        MonitorConfig.from_dict(data).validate()


def test_save_and_reload(tmp_path):
    config = MonitorConfig.from_dict({"tracking": {"syn_threshold": 7}})
    path = tmp_path / "nested" / "out.yaml"
    config.save_yaml(str(path))

    assert MonitorConfig.from_yaml(str(path)).tracking.syn_threshold == 7
