import pytest
import redis

from tcp_flow_monitor.errors import StoreError
from tcp_flow_monitor.storage.redis_store import RedisKeyValueStore


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.queued = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def watch(self, name):
        pass

    def exists(self, name):
        return name in self.client.hashes

    def multi(self):
        pass

    def hset(self, name, mapping):
        self.queued.append(lambda: self.client.hset(name, mapping=mapping))

    def hincrby(self, name, field, by):
        self.queued.append(lambda: self.client.hincrby(name, field, by))

    def execute(self):
        if self.client.down:
            raise redis.exceptions.ConnectionError("Connection refused")
        replies = [op() for op in self.queued]
        self.queued = []
        return replies


class FakeRedis:
    """Just enough of redis.Redis with decode_responses=True."""

    def __init__(self):
        self.hashes = {}
        self.down = False

    def _check(self):
        if self.down:
            raise redis.exceptions.ConnectionError("Connection refused")

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def ping(self):
        self._check()
        return True

    def exists(self, name):
        self._check()
        return int(name in self.hashes)

    def hset(self, name, key=None, value=None, mapping=None):
        self._check()
        fields = self.hashes.setdefault(name, {})
        if mapping:
            fields.update({k: str(v) for k, v in mapping.items()})
        if key is not None:
            fields[key] = str(value)
        return 1

    def hincrby(self, name, field, by):
        self._check()
        fields = self.hashes.setdefault(name, {})
        fields[field] = str(int(fields.get(field, 0)) + by)
        return int(fields[field])

    def hgetall(self, name):
        self._check()
        return dict(self.hashes.get(name, {}))

    def scan_iter(self, match=None):
        self._check()
        prefix = match.rstrip("*")
        return iter([name for name in self.hashes if name.startswith(prefix)])

    def delete(self, name):
        self._check()
        return int(self.hashes.pop(name, None) is not None)

    def close(self):
        pass


@pytest.fixture
def client():
    return FakeRedis()


@pytest.fixture
def store(client):
    return RedisKeyValueStore(client, key_prefix="flow:")


def test_create_only_once(store, client):
    assert store.create("a<->z", {"a_to_z_bytes": 0})
    assert not store.create("a<->z", {"a_to_z_bytes": 99})
    assert client.hashes["flow:a<->z"] == {"a_to_z_bytes": "0"}


def test_update_fields_returns_incremented_values(store):
    store.create("k", {"a_to_z_bytes": 0, "a_to_z_syn_counter": 2})

    results = store.update_fields(
        "k",
        {"a_to_z_bytes": 100, "a_to_z_syn_counter": 0},
        {"a_to_z_last_seq": 7},
    )

    assert results == {"a_to_z_bytes": 100, "a_to_z_syn_counter": 2}
    assert store.get_fields("k")["a_to_z_last_seq"] == "7"


def test_keys_are_namespaced(store, client):
    store.create("one", {"x": 1})
    store.create("two", {"x": 1})
    client.hashes["session:other"] = {"x": "1"}

    assert sorted(store.list_keys()) == ["one", "two"]
    assert store.exists("one")
    assert store.delete("one")
    assert not store.exists("one")


def test_redis_errors_become_store_errors(store, client):
    client.down = True

    with pytest.raises(StoreError):
        store.ping()
    with pytest.raises(StoreError):
        store.get_fields("k")
    with pytest.raises(StoreError):
        store.update_fields("k", {"a_to_z_bytes": 1}, {})
    with pytest.raises(StoreError):
        store.list_keys()


def test_watch_conflict_means_not_created(store, client, monkeypatch):
    def conflicting_execute(self):
        raise redis.exceptions.WatchError("watched key changed")

    monkeypatch.setattr(FakePipeline, "execute", conflicting_execute)
    assert store.create("k", {"x": 1}) is False
