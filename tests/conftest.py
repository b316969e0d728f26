import threading
from collections import deque

import pytest

from tcp_flow_monitor.errors import CaptureError, StoreError
from tcp_flow_monitor.models.datagram import SYN, Datagram
from tcp_flow_monitor.storage.kv_store import KeyValueStore


def build_datagram(
    src="10.0.0.5:51000",
    dst="93.184.216.34:80",
    payload=0,
    flags=SYN,
    seq=1000,
    ack=0,
    ts=100.0,
):
    src_ip, src_port = src.rsplit(":", 1)
    dst_ip, dst_port = dst.rsplit(":", 1)
    return Datagram(
        src_ip=src_ip,
        src_port=int(src_port),
        dst_ip=dst_ip,
        dst_port=int(dst_port),
        payload_bytes=payload,
        seq_num=seq,
        ack_num=ack,
        flags=flags,
        timestamp=ts,
    )


class FakeKeyValueStore(KeyValueStore):
    """Dict-backed store; set fail=True to simulate an outage."""

    def __init__(self):
        self.data = {}
        self.fail = False
        self._lock = threading.Lock()

    def _check(self):
        if self.fail:
            raise StoreError("connection refused")

    def exists(self, key):
        self._check()
        return key in self.data

    def create(self, key, fields):
        self._check()
        with self._lock:
            if key in self.data:
                return False
            self.data[key] = {k: str(v) for k, v in fields.items()}
            return True

    def increment_field(self, key, field, by=1):
        self._check()
        with self._lock:
            fields = self.data.setdefault(key, {})
            value = int(fields.get(field, 0)) + by
            fields[field] = str(value)
            return value

    def set_field(self, key, field, value):
        self._check()
        with self._lock:
            self.data.setdefault(key, {})[field] = str(value)

    def get_fields(self, key):
        self._check()
        return dict(self.data.get(key, {}))

    def list_keys(self):
        self._check()
        return list(self.data)

    def delete(self, key):
        self._check()
        return self.data.pop(key, None) is not None


class FakeSource:
    """Capture source replaying a fixed list, then failing or idling."""

    def __init__(self, datagrams, fail_at_end=False):
        self._queue = deque(datagrams)
        self.fail_at_end = fail_at_end
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def get_datagram(self, timeout=None):
        if self._queue:
            return self._queue.popleft()
        if self.fail_at_end:
            raise CaptureError("interface went away")
        return None


@pytest.fixture
def make_datagram():
    return build_datagram


@pytest.fixture
def fake_store():
    return FakeKeyValueStore()


@pytest.fixture
def make_source():
    return FakeSource
