import redis
import logging
import json
import time

from datetime import timedelta
from typing import Callable, Optional

from swap_volume_monitor.config import REDIS_HOST, REDIS_PORT, REDIS_DB


class RedisService:
    """
    Key/value store with per-key TTL used for pool and token metadata.
    Falls back to an in-process dict that honours the same TTLs when Redis
    is not configured or unreachable.
    """

    def __init__(
        self,
        host=REDIS_HOST,
        port=REDIS_PORT,
        db=REDIS_DB,
        clock: Callable[[], float] = time.monotonic,
    ):
        # Sanitize env-derived values; Redis is optional
        self.host = host if host else None
        try:
            self.port = int(port) if port not in (None, "") else None
        except (TypeError, ValueError):
            self.port = None
        try:
            self.db = int(db) if db not in (None, "") else None
        except (TypeError, ValueError):
            self.db = None
        self.client = None
        self.logger = logging.getLogger("RedisService")
        self._clock = clock
        # key -> (expires_at or None, value)
        self._fallback_cache = {}
        self.connect()

    def connect(self):
        if not (self.host and self.port is not None and self.db is not None):
            self.logger.info("Redis not configured; using in-memory fallback cache")
            self.client = None
            return
        try:
            self.client = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                socket_timeout=2,
                socket_connect_timeout=2,
                health_check_interval=30,
                retry_on_timeout=True,
                decode_responses=True,
            )

            if not self.client.ping():
                raise ConnectionError("redis ping failed")

            self.logger.info("Redis connected successfully")
        except (redis.RedisError, ConnectionError) as e:
            self.logger.error(f"Redis connection failed: {str(e)}")
            self.client = None

    def is_connected(self) -> bool:
        return self.client is not None

    def set(self, key: str, value, ttl: Optional[float] = None):
        """
        Set value with optional TTL (seconds)
        """
        try:
            if self.is_connected():
                if ttl:
                    self.client.setex(key, time=timedelta(seconds=ttl), value=value)
                else:
                    self.client.set(key, value=value)
                return True
        except redis.RedisError as e:
            self.logger.warning(f"Redis set failed: {str(e)}")

        expires_at = self._clock() + ttl if ttl else None
        self._fallback_cache[key] = (expires_at, value)
        return False

    def get(self, key: str):
        try:
            if self.is_connected():
                return self.client.get(key)
        except redis.RedisError as e:
            self.logger.warning(f"Redis get failed: {str(e)}")

        cached = self._fallback_cache.get(key)
        if cached is None:
            return None
        expires_at, value = cached
        if expires_at is not None and expires_at <= self._clock():
            self._fallback_cache.pop(key, None)
            return None
        return value

    def set_json(self, key: str, data: dict, ttl: Optional[float] = None):
        return self.set(key, json.dumps(data), ttl=ttl)

    def get_json(self, key: str):
        result = self.get(key)
        if result:
            try:
                return json.loads(result)
            except json.JSONDecodeError:
                self.logger.error(f"Invalid JSON data for key: {key}")
        return None

    def _purge_expired(self):
        now = self._clock()
        expired = [
            key
            for key, (expires_at, _) in self._fallback_cache.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._fallback_cache[key]

    def count_prefix(self, prefix: str) -> int:
        """Number of live keys starting with prefix"""
        try:
            if self.is_connected():
                return sum(1 for _ in self.client.scan_iter(match=f"{prefix}*"))
        except redis.RedisError as e:
            self.logger.warning(f"Redis scan failed: {str(e)}")

        self._purge_expired()
        return sum(1 for key in self._fallback_cache if key.startswith(prefix))

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        try:
            if self.is_connected():
                keys = list(self.client.scan_iter(match=f"{prefix}*"))
                if keys:
                    deleted = self.client.delete(*keys)
        except redis.RedisError as e:
            self.logger.warning(f"Redis delete failed: {str(e)}")

        stale = [key for key in self._fallback_cache if key.startswith(prefix)]
        for key in stale:
            del self._fallback_cache[key]
        return deleted + len(stale)

    def get_metrics(self):
        """Get Redis service health metrics"""
        try:
            if self.is_connected():
                info = self.client.info()
                return {
                    "status": "connected",
                    "version": info.get("redis_version"),
                    "used_memory": info.get("used_memory_human"),
                    "ops_per_sec": info.get("instantaneous_ops_per_sec"),
                }
        except redis.RedisError:
            self.logger.warning("Redis info failed")

        return {"status": "disconnected", "fallback_items": len(self._fallback_cache)}

    def close(self):
        """Clean up connections"""
        if self.client:
            self.client.close()
