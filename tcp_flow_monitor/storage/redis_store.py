"""Redis adapter for the key-value backed flow table."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Mapping, Optional

import redis

from ..errors import StoreError
from .kv_store import KeyValueStore

log = logging.getLogger(__name__)


@contextmanager
def _store_errors(operation: str, key: Optional[str] = None):
    """Re-raise redis failures as StoreError."""
    try:
        yield
    except redis.exceptions.RedisError as e:
        target = f" {key}" if key else ""
        raise StoreError(f"redis {operation}{target} failed: {e}") from e


class RedisKeyValueStore(KeyValueStore):
    """
    One redis hash per flow, keys namespaced with a prefix.

    Creation uses WATCH/MULTI so that only one writer creates a hash, and
    batched updates run as a single MULTI/EXEC so readers never see a
    half-applied datagram.
    """

    def __init__(
        self,
        client: "redis.Redis",
        key_prefix: str = "flow:",
    ):
        self._client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(
        cls,
        url: str = "redis://127.0.0.1:6379/0",
        timeout: float = 1.0,
        key_prefix: str = "flow:",
    ) -> "RedisKeyValueStore":
        """Connect with bounded socket timeouts."""
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=True,
        )
        return cls(client, key_prefix=key_prefix)

    def _name(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def ping(self) -> bool:
        with _store_errors("PING"):
            return bool(self._client.ping())

    def exists(self, key: str) -> bool:
        with _store_errors("EXISTS", key):
            return bool(self._client.exists(self._name(key)))

    def create(self, key: str, fields: Mapping[str, Any]) -> bool:
        name = self._name(key)
        with _store_errors("create", key):
            with self._client.pipeline() as pipe:
                try:
                    pipe.watch(name)
                    if pipe.exists(name):
                        return False
                    pipe.multi()
                    pipe.hset(name, mapping=dict(fields))
                    pipe.execute()
                    log.debug("Created flow %s", key)
                    return True
                except redis.exceptions.WatchError:
                    # Another writer created it first
                    return False

    def increment_field(self, key: str, field: str, by: int = 1) -> int:
        with _store_errors("HINCRBY", key):
            return int(self._client.hincrby(self._name(key), field, by))

    def set_field(self, key: str, field: str, value: Any) -> None:
        with _store_errors("HSET", key):
            self._client.hset(self._name(key), field, value)

    def update_fields(
        self,
        key: str,
        increments: Mapping[str, int],
        values: Mapping[str, Any],
    ) -> Dict[str, int]:
        name = self._name(key)
        fields = list(increments)
        with _store_errors("update", key):
            with self._client.pipeline(transaction=True) as pipe:
                for field in fields:
                    pipe.hincrby(name, field, increments[field])
                if values:
                    pipe.hset(name, mapping=dict(values))
                replies = pipe.execute()
        return {field: int(reply) for field, reply in zip(fields, replies)}

    def get_fields(self, key: str) -> Dict[str, str]:
        with _store_errors("HGETALL", key):
            return dict(self._client.hgetall(self._name(key)))

    def list_keys(self) -> List[str]:
        prefix_len = len(self.key_prefix)
        with _store_errors("SCAN"):
            return [
                name[prefix_len:]
                for name in self._client.scan_iter(match=f"{self.key_prefix}*")
            ]

    def delete(self, key: str) -> bool:
        with _store_errors("DEL", key):
            return bool(self._client.delete(self._name(key)))

    def close(self) -> None:
        try:
            self._client.close()
        except redis.exceptions.RedisError as e:
            log.debug("Error closing redis client: %s", e)
