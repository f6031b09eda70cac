"""
Integration tests for container startup and the ordered shutdown sequence.
"""

import pytest

from orderbook_service.app.core.container import ServiceContainer
from orderbook_service.app.core.exceptions import BrokerConnectionError
from orderbook_service.app.events.schemas import Topic


class TestStartup:
    async def test_components_start_in_order(self, make_container, broker):
        container = make_container()

        await container.startup()
        try:
            assert broker.calls == ["connect", "start_consuming"]
            assert container.is_started
            assert container.processor.is_started
            assert container.broadcaster.is_running
            assert container.cache.is_available
        finally:
            await container.shutdown()

    async def test_outcome_topics_use_a_per_node_group(self, container, broker):
        assert container.broadcast_group_id == "orderbook-processor-group-broadcast-test-node"
        for topic in (Topic.CUSTOMER_UPDATES, Topic.ITEM_UPDATES, Topic.ORDER_UPDATES):
            assert broker.group_ids[topic.value] == container.broadcast_group_id
        for topic in (Topic.CUSTOMER_EVENTS, Topic.ITEM_EVENTS, Topic.ORDER_EVENTS):
            assert broker.group_ids[topic.value] is None

    async def test_broker_connect_failure_is_fatal(self, make_container, broker):
        async def refuse():
            raise BrokerConnectionError("Failed to connect to Kafka after 3 attempts")

        broker.connect = refuse
        container = make_container()

        with pytest.raises(BrokerConnectionError):
            await container.startup()
        await container.shutdown()

        assert not container.is_started

    async def test_degraded_cache_does_not_block_startup(self, make_container, fake_redis):
        fake_redis.fail = True
        container = make_container()

        await container.startup()
        try:
            report = await container.health_report()
            assert container.is_started
            assert report["components"]["cache"]["status"] == "unhealthy"
        finally:
            await container.shutdown()


class TestShutdown:
    async def test_shutdown_runs_steps_in_order_once(self, make_container, broker):
        container = make_container()
        await container.startup()

        await container.shutdown()
        await container.shutdown()

        assert broker.calls == ["connect", "start_consuming", "stop_consuming", "disconnect"]
        assert not container.broadcaster.is_running
        assert container.cache.redis_client is None

    async def test_failing_step_does_not_stop_the_rest(self, make_container, broker):
        container = make_container()
        await container.startup()

        async def explode():
            raise RuntimeError("broadcaster stuck")

        container.broadcaster.shutdown = explode
        await container.shutdown()

        assert broker.calls[-2:] == ["stop_consuming", "disconnect"]
        assert container.cache.redis_client is None


def test_from_settings_wires_real_clients(test_settings):
    container = ServiceContainer.from_settings(test_settings)

    assert container.cache.redis_url == test_settings.REDIS_URL
    assert container.broker.bootstrap_servers == test_settings.KAFKA_BOOTSTRAP_SERVERS
    assert container.producer.event_publisher is container.broker
