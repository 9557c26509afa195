"""
Redis-backed key-value store (multi-process, multi-instance).

Hash increments map onto HINCRBY / HINCRBYFLOAT, which Redis applies
atomically, so every application instance can write the same counters.
"""

import logging
from typing import Dict, Optional

import redis

from ai_cost_meter.core.errors import InfrastructureError

from .base import KeyValueStore

logger = logging.getLogger(__name__)


class RedisKeyValueStore(KeyValueStore):
    """Key-value store on top of a redis-py client."""

    def __init__(self, client: "redis.Redis"):
        """
        Args:
            client: redis-py client created with decode_responses=True
        """
        self.client = client

    @classmethod
    def from_url(cls, url: str, timeout_seconds: float = 0.5) -> "RedisKeyValueStore":
        """Connect to Redis with short socket timeouts."""
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        logger.info("Redis key-value store initialized: %s", url)
        return cls(client)

    def increment_field(self, key: str, field: str, amount: int) -> int:
        try:
            return int(self.client.hincrby(key, field, int(amount)))
        except redis.RedisError as e:
            raise InfrastructureError(f"HINCRBY failed for {key}.{field}: {e}", "redis") from e

    def increment_float_field(self, key: str, field: str, amount: float) -> float:
        try:
            return float(self.client.hincrbyfloat(key, field, float(amount)))
        except redis.RedisError as e:
            raise InfrastructureError(f"HINCRBYFLOAT failed for {key}.{field}: {e}", "redis") from e

    def get_all_fields(self, key: str) -> Dict[str, str]:
        try:
            return dict(self.client.hgetall(key) or {})
        except redis.RedisError as e:
            raise InfrastructureError(f"HGETALL failed for {key}: {e}", "redis") from e

    def set_expiry(self, key: str, seconds: int) -> None:
        try:
            self.client.expire(key, int(seconds))
        except redis.RedisError as e:
            raise InfrastructureError(f"EXPIRE failed for {key}: {e}", "redis") from e

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            raise InfrastructureError(f"GET failed for {key}: {e}", "redis") from e

    def set_with_expiry(self, key: str, value: str, seconds: int) -> None:
        try:
            self.client.setex(key, int(seconds), value)
        except redis.RedisError as e:
            raise InfrastructureError(f"SETEX failed for {key}: {e}", "redis") from e
