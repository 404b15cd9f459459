"""
Redis cache for read-heavy stock aggregates.

Every operation degrades to a miss when Redis is disabled or unreachable,
so callers always fall through to the database.
"""

import logging
import json
from typing import Any, Optional, Callable
from datetime import datetime, date
from decimal import Decimal

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    def default(obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return {'__decimal__': str(obj)}
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        raise TypeError(f"Cannot cache value of type {type(obj).__name__}")
    return json.dumps(value, default=default)


def _decode(raw: str) -> Any:
    def hook(obj: dict) -> Any:
        if '__decimal__' in obj:
            return Decimal(obj['__decimal__'])
        return obj
    return json.loads(raw, object_hook=hook)


class CacheService:
    """
    Keys look like ``{prefix}:{module}:{key}``; a module (``dashboard``)
    is invalidated as a whole whenever stock or the catalog changes.
    """

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'inventory'
        self.default_ttl = 60
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'inventory')
        self.default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)

        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled by configuration")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            retry_on_timeout=True,
            health_check_interval=30
        )
        try:
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {redis_url}: {e}. Running without cache.")
            return

        self.client = client
        logger.info(f"[CACHE] Connected to {redis_url}")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def key_for(self, module: str, key: str) -> str:
        return f"{self.prefix}:{module}:{key}"

    def get(self, module: str, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(self.key_for(module, key))
        except RedisError as e:
            logger.warning(f"[CACHE] GET {module}:{key} failed: {e}")
            return None
        if raw is None:
            return None
        try:
            return _decode(raw)
        except ValueError:
            logger.warning(f"[CACHE] Dropping unreadable entry {module}:{key}")
            return None

    def set(self, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.setex(self.key_for(module, key), ttl or self.default_ttl, _encode(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] SET {module}:{key} failed: {e}")
            return False
        return True

    def memoize(self, module: str, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Return the cached value, or call ``loader`` and cache its result."""
        cached = self.get(module, key)
        if cached is not None:
            return cached
        value = loader()
        self.set(module, key, value, ttl)
        return value

    def invalidate_module(self, module: str) -> int:
        """Delete every key of ``module``; returns how many were removed."""
        if not self.enabled:
            return 0
        pattern = self.key_for(module, '*')
        try:
            keys = list(self.client.scan_iter(match=pattern, count=100))
            if keys:
                self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate {pattern} failed: {e}")
            return 0
        if keys:
            logger.info(f"[CACHE] Invalidated {pattern} ({len(keys)} keys)")
        return len(keys)


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service
