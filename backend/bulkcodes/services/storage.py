from __future__ import annotations

import json
import math
import time
from typing import Any, Callable

import structlog
from redis import Redis

logger = structlog.get_logger(__name__)

API_KEY_OPTION = "bulkcodes:option:api_key"


def transient_key(name: str) -> str:
    return f"bulkcodes:transient:{name}"


class OptionStore:
    """Flat key/value settings the operator can change at runtime."""

    def __init__(self, redis_client: Redis, *, default_api_key: str = "") -> None:
        self.redis = redis_client
        self.default_api_key = default_api_key

    def get_api_key(self) -> str:
        raw = self.redis.get(API_KEY_OPTION)
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
        return (self.default_api_key or "").strip()

    def set_api_key(self, value: str) -> None:
        cleaned = (value or "").strip()
        if cleaned:
            self.redis.set(API_KEY_OPTION, cleaned)
        else:
            self.redis.delete(API_KEY_OPTION)


class TransientCache:
    """Time-boxed JSON cache.

    Each entry stores its own expiry, checked against ``clock`` so staleness
    can be tested without waiting on Redis key expiry.
    """

    def __init__(self, redis_client: Redis, *, clock: Callable[[], float] = time.time) -> None:
        self.redis = redis_client
        self.clock = clock

    def get(self, name: str) -> Any | None:
        key = transient_key(name)
        raw = self.redis.get(key)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            expires_at = float(payload["expires_at"])
            value = payload["value"]
        except (ValueError, KeyError, TypeError):
            logger.warning("transient_cache_corrupt", key=key)
            self.redis.delete(key)
            return None
        if expires_at <= self.clock():
            self.redis.delete(key)
            return None
        return value

    def set(self, name: str, value: Any, ttl_seconds: int) -> None:
        payload = {"expires_at": self.clock() + ttl_seconds, "value": value}
        self.redis.setex(transient_key(name), max(math.ceil(ttl_seconds), 1), json.dumps(payload))

    def delete(self, name: str) -> None:
        self.redis.delete(transient_key(name))
