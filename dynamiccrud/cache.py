"""Schema cache strategies.

Introspecting a table costs several catalog queries, so SchemaAnalyzer
stores the resulting schema (as a JSON-serializable dict) in one of these
strategies:

    none    no caching
    memory  per-process dict with expiry
    file    one JSON file per key holding ``expires_at`` and ``value``
    redis   JSON values written with SETEX

Usage::

    cache = create_cache(settings)
    cache.set("schema_users", schema.to_dict(), ttl=3600)
    cached = cache.get("schema_users")
"""

# flake8: noqa: E501


import hashlib
import json
import os
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import redis

from dynamiccrud.exceptions import ConfigurationError
from dynamiccrud.logging_config import get_logger

logger = get_logger(__name__)

_DEFAULT_TTL = 3600  # 1 hour
_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]")


class CacheStrategy(ABC):
    """Interface shared by every cache backend."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss or expiry."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int = _DEFAULT_TTL) -> bool:
        """Store a value for ttl seconds."""
        pass

    @abstractmethod
    def invalidate(self, key: str) -> bool:
        """Remove one key. Returns True if something was removed."""
        pass

    @abstractmethod
    def clear(self) -> bool:
        """Remove every key owned by this cache."""
        pass


class MemoryCacheStrategy(CacheStrategy):
    """Per-process dictionary cache."""

    def __init__(self):
        self._store: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at < time.time():
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: int = _DEFAULT_TTL) -> bool:
        self._store[key] = (time.time() + ttl, value)
        return True

    def invalidate(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def clear(self) -> bool:
        self._store.clear()
        return True


class FileCacheStrategy(CacheStrategy):
    """
    File cache: one JSON document per key.

    Expired or unreadable files are treated as a miss and removed.

    Args:
        cache_dir: Directory holding the cache files (created if missing)
    """

    SUFFIX = ".cache.json"

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir
        try:
            os.makedirs(cache_dir, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create cache directory {cache_dir}: {e}") from e

    def _path(self, key: str) -> str:
        safe = _SAFE_KEY_RE.sub("_", key)
        if safe != key:
            # keep distinct keys distinct after sanitizing
            safe = f"{safe}_{hashlib.md5(key.encode()).hexdigest()[:8]}"
        return os.path.join(self.cache_dir, f"{safe}{self.SUFFIX}")

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            expires_at = payload["expires_at"]
            value = payload["value"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("cache_file_unreadable", key=key, error=str(e))
            self._remove(path)
            return None

        if expires_at < time.time():
            self._remove(path)
            return None
        return value

    def set(self, key: str, value: Any, ttl: int = _DEFAULT_TTL) -> bool:
        path = self._path(key)
        tmp_path = f"{path}.tmp"
        payload = {"expires_at": time.time() + ttl, "value": value}
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, default=str)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning("cache_write_failed", key=key, error=str(e))
            return False
        return True

    def invalidate(self, key: str) -> bool:
        return self._remove(self._path(key))

    def clear(self) -> bool:
        for name in os.listdir(self.cache_dir):
            if name.endswith(self.SUFFIX):
                self._remove(os.path.join(self.cache_dir, name))
        return True

    @staticmethod
    def _remove(path: str) -> bool:
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False


class RedisCacheStrategy(CacheStrategy):
    """
    Redis-backed cache.

    Values are stored as JSON with SETEX. Connection errors are logged and
    treated as a miss so a Redis outage only costs a catalog query.

    Args:
        redis_url: Redis URL, e.g. redis://localhost:6379/0
        prefix: Namespace prepended to every key
        client: Pre-built redis client (used instead of redis_url)
    """

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "dynamiccrud:", client=None):
        if client is None and not redis_url:
            raise ConfigurationError("REDIS_URL is required for the redis cache backend")
        self.prefix = prefix
        self._redis = client or redis.from_url(redis_url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._redis.get(self._key(key))
        except redis.RedisError as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def set(self, key: str, value: Any, ttl: int = _DEFAULT_TTL) -> bool:
        try:
            self._redis.setex(self._key(key), ttl, json.dumps(value, default=str))
        except redis.RedisError as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            return False
        return True

    def invalidate(self, key: str) -> bool:
        try:
            return bool(self._redis.delete(self._key(key)))
        except redis.RedisError as e:
            logger.warning("cache_invalidate_failed", key=key, error=str(e))
            return False

    def clear(self) -> bool:
        try:
            keys = list(self._redis.scan_iter(match=f"{self.prefix}*"))
            if keys:
                self._redis.delete(*keys)
        except redis.RedisError as e:
            logger.warning("cache_clear_failed", error=str(e))
            return False
        return True


def create_cache(settings) -> Optional[CacheStrategy]:
    """
    Build the cache strategy named by settings.cache_backend.

    Returns:
        CacheStrategy, or None for the "none" backend
    """
    backend = settings.cache_backend
    if backend == "none":
        return None
    if backend == "memory":
        return MemoryCacheStrategy()
    if backend == "file":
        return FileCacheStrategy(settings.cache_dir)
    if backend == "redis":
        return RedisCacheStrategy(settings.redis_url)
    raise ConfigurationError(f"Unknown cache backend: {backend}")
