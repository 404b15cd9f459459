"""
Unit tests for the Redis cache wrapper (Redis itself is mocked).
"""

from decimal import Decimal
from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from inventory.services.cache_service import CacheService, _encode, _decode


def _cache_with_client():
    cache = CacheService()
    cache.client = MagicMock()
    cache.prefix = 'test'
    return cache


class TestCacheService:

    def test_disabled_cache_always_loads(self):
        cache = CacheService()
        loader = MagicMock(return_value={'total_products': 3})

        assert cache.memoize('dashboard', 'stats', loader) == {'total_products': 3}
        assert cache.memoize('dashboard', 'stats', loader) == {'total_products': 3}
        assert loader.call_count == 2
        assert cache.invalidate_module('dashboard') == 0

    def test_miss_then_store(self):
        cache = _cache_with_client()
        cache.client.get.return_value = None

        value = cache.memoize('dashboard', 'stats:2026-10-19', lambda: {'total_value': Decimal('10.50')}, ttl=30)

        assert value == {'total_value': Decimal('10.50')}
        key, ttl, payload = cache.client.setex.call_args[0]
        assert key == 'test:dashboard:stats:2026-10-19'
        assert ttl == 30
        assert _decode(payload) == {'total_value': Decimal('10.50')}

    def test_hit_skips_loader(self):
        cache = _cache_with_client()
        cache.client.get.return_value = _encode({'low_stock_count': 2})
        loader = MagicMock()

        assert cache.memoize('dashboard', 'stats', loader) == {'low_stock_count': 2}
        loader.assert_not_called()

    def test_redis_errors_degrade_to_miss(self):
        cache = _cache_with_client()
        cache.client.get.side_effect = RedisConnectionError('down')
        cache.client.setex.side_effect = RedisConnectionError('down')

        assert cache.memoize('dashboard', 'stats', lambda: 7) == 7

    def test_invalidate_module(self):
        cache = _cache_with_client()
        cache.client.scan_iter.return_value = iter(['test:dashboard:a', 'test:dashboard:b'])

        assert cache.invalidate_module('dashboard') == 2
        cache.client.scan_iter.assert_called_once_with(match='test:dashboard:*', count=100)
        cache.client.delete.assert_called_once_with('test:dashboard:a', 'test:dashboard:b')
