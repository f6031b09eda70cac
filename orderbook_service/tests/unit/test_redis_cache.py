"""
Unit tests for the Redis cache layer and write-path invalidation.
"""

import json

import pytest

from orderbook_service.app.services.cache.invalidation import CacheInvalidationService
from orderbook_service.app.services.cache.redis_cache import (
    CacheEntity,
    CacheTTLPolicy,
    RedisCacheService,
    entity_key,
    filter_hash,
    list_key,
)


class TestCacheKeys:
    def test_filter_hash_ignores_key_order(self):
        assert filter_hash({"page": 1, "limit": 10}) == filter_hash({"limit": 10, "page": 1})

    def test_filter_hash_differs_per_filter_tuple(self):
        assert filter_hash({"page": 1, "limit": 10}) != filter_hash({"page": 2, "limit": 10})

    def test_key_layout(self):
        filters = {"page": 1}
        assert entity_key(CacheEntity.CUSTOMER, "c1") == "customer:c1"
        assert list_key(CacheEntity.ITEM, filters).startswith("items:list:")
        assert list_key(CacheEntity.ORDER, filters, customer_id="c1").startswith(
            "orders:customer:c1:"
        )

    def test_list_ttls_shorter_than_entity_ttls(self):
        policy = CacheTTLPolicy()
        for kind in CacheEntity:
            assert policy.list_ttl(kind) < policy.entity_ttl(kind)


class TestRedisCacheService:
    @pytest.fixture
    async def cache(self, fake_redis):
        cache = RedisCacheService(client=fake_redis)
        await cache.initialize()
        return cache

    async def test_set_entity_uses_type_ttl(self, cache, fake_redis):
        await cache.set_entity(CacheEntity.CUSTOMER, "c1", {"id": "c1"})

        assert fake_redis.ttls["customer:c1"] == 3600
        assert json.loads(fake_redis.store["customer:c1"]) == {"id": "c1"}
        assert await cache.get_entity(CacheEntity.CUSTOMER, "c1") == {"id": "c1"}

    async def test_set_list_uses_list_ttl(self, cache, fake_redis):
        await cache.set_list(CacheEntity.ORDER, {"page": 1}, {"items": []})

        assert fake_redis.ttls[list_key(CacheEntity.ORDER, {"page": 1})] == 300

    async def test_conditional_set_keeps_existing_entry(self, cache, fake_redis):
        await cache.set_entity(CacheEntity.CUSTOMER, "c1", {"name": "fresh"})

        written = await cache.set_entity(
            CacheEntity.CUSTOMER, "c1", {"name": "stale"}, only_if_absent=True
        )

        assert written is False
        assert await cache.get_entity(CacheEntity.CUSTOMER, "c1") == {"name": "fresh"}
        assert await cache.set_entity(
            CacheEntity.CUSTOMER, "c2", {"name": "new"}, only_if_absent=True
        )
        assert fake_redis.ttls["customer:c2"] == 3600

    async def test_delete_pattern_only_matching_keys(self, cache, fake_redis):
        await cache.set("customers:list:a", 1, 60)
        await cache.set("customers:list:b", 2, 60)
        await cache.set("customer:c1", 3, 60)

        deleted = await cache.delete_pattern("customers:list:*")

        assert deleted == 2
        assert list(fake_redis.store) == ["customer:c1"]

    async def test_get_failure_is_a_miss(self, cache, fake_redis):
        await cache.set("customer:c1", {"id": "c1"}, 60)
        fake_redis.fail = True

        assert await cache.get("customer:c1") is None

    async def test_write_failures_are_noops(self, cache, fake_redis):
        fake_redis.fail = True

        assert await cache.set("customer:c1", {"id": "c1"}, 60) is False
        assert await cache.delete("customer:c1") == 0
        assert await cache.delete_pattern("customer*") == 0
        assert await cache.ping() is False

    async def test_initialize_with_unreachable_redis_degrades(self, fake_redis):
        fake_redis.fail = True
        cache = RedisCacheService(client=fake_redis)

        await cache.initialize()

        assert cache.is_available is False

    async def test_stats_report_key_count(self, cache):
        await cache.set("customer:c1", 1, 60)

        stats = await cache.get_stats()

        assert stats["connected"] is True
        assert stats["total_keys"] == 1

    async def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            RedisCacheService()


class TestCacheInvalidationService:
    @pytest.fixture
    async def setup(self, fake_redis):
        cache = RedisCacheService(client=fake_redis)
        await cache.initialize()
        return cache, CacheInvalidationService(cache)

    async def test_item_write_refreshes_entity_and_drops_lists(self, setup, fake_redis):
        cache, invalidation = setup
        await cache.set_list(CacheEntity.ITEM, {"page": 1}, {"items": []})
        await cache.set_list(CacheEntity.ITEM, {"page": 1}, {"items": []}, customer_id="c1")
        await cache.set_list(CacheEntity.ITEM, {"page": 1}, {"items": []}, customer_id="c2")

        await invalidation.item_written({"id": "i1", "customerId": "c1", "quantity": 4})

        assert await cache.get_entity(CacheEntity.ITEM, "i1") == {
            "id": "i1",
            "customerId": "c1",
            "quantity": 4,
        }
        remaining = [k for k in fake_redis.store if k.startswith("items:")]
        assert remaining == [list_key(CacheEntity.ITEM, {"page": 1}, customer_id="c2")]

    async def test_order_write_with_stock_change_drops_item_entries(self, setup, fake_redis):
        cache, invalidation = setup
        await cache.set_entity(CacheEntity.ITEM, "i1", {"id": "i1", "quantity": 5})

        await invalidation.order_written(
            {"id": "o1", "customerId": "c1", "items": [{"itemId": "i1"}]},
            stock_changed=True,
        )

        assert "item:i1" not in fake_redis.store
        assert "order:o1" in fake_redis.store

    async def test_customer_delete_drops_children(self, setup, fake_redis):
        cache, invalidation = setup
        await cache.set_entity(CacheEntity.CUSTOMER, "c1", {"id": "c1"})
        await cache.set_entity(CacheEntity.ITEM, "i1", {"id": "i1"})
        await cache.set_entity(CacheEntity.ORDER, "o1", {"id": "o1"})

        await invalidation.customer_deleted("c1", ["i1"], ["o1"])

        assert fake_redis.store == {}

    async def test_clear_pattern_without_pattern_clears_everything(self, setup, fake_redis):
        cache, invalidation = setup
        await cache.set_entity(CacheEntity.CUSTOMER, "c1", {"id": "c1"})
        await cache.set_list(CacheEntity.ORDER, {"page": 1}, {"items": []})

        assert await invalidation.clear_pattern() == 2
        assert fake_redis.store == {}
