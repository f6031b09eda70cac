"""
Unit tests for the envelope, topic pairing and typed payloads.
"""

import pytest
from pydantic import ValidationError

from orderbook_service.app.events.base import EventEnvelope, EventMetadata, EventSource
from orderbook_service.app.events.schemas import (
    OUTCOME_TOPIC_FOR,
    PAYLOAD_MODELS,
    CustomerUpdatePayload,
    ItemQuantityUpdatePayload,
    RequestEventType,
    Topic,
    parse_request_type,
    payload_to_wire,
)


class TestTopics:
    def test_each_request_topic_has_one_outcome_topic(self):
        assert OUTCOME_TOPIC_FOR == {
            Topic.CUSTOMER_EVENTS: Topic.CUSTOMER_UPDATES,
            Topic.ITEM_EVENTS: Topic.ITEM_UPDATES,
            Topic.ORDER_EVENTS: Topic.ORDER_UPDATES,
        }

    @pytest.mark.parametrize(
        "event_type, topic",
        [
            (RequestEventType.CUSTOMER_DELETE_REQUESTED, Topic.CUSTOMER_EVENTS),
            (RequestEventType.ITEM_QUANTITY_UPDATE_REQUESTED, Topic.ITEM_EVENTS),
            (RequestEventType.ORDER_CANCEL_REQUESTED, Topic.ORDER_EVENTS),
        ],
    )
    def test_event_type_topic(self, event_type, topic):
        assert event_type.topic is topic
        assert event_type.outcome_topic is OUTCOME_TOPIC_FOR[topic]

    def test_outcome_type_names(self):
        event_type = RequestEventType.ITEM_QUANTITY_UPDATE_REQUESTED

        assert event_type.outcome_type(True) == "ITEM_QUANTITY_UPDATE_SUCCESS"
        assert event_type.outcome_type(False) == "ITEM_QUANTITY_UPDATE_FAILED"

    def test_every_event_type_has_a_payload_model(self):
        assert set(PAYLOAD_MODELS) == set(RequestEventType)

    def test_parse_unknown_type(self):
        assert parse_request_type("CUSTOMER_ARCHIVE_REQUESTED") is None
        assert parse_request_type("ORDER_CREATE_REQUESTED") is RequestEventType.ORDER_CREATE_REQUESTED


class TestEventEnvelope:
    def test_wire_format_is_camel_case(self):
        envelope = EventEnvelope(
            event_type="ORDER_CREATE_REQUESTED",
            payload={"id": "o1"},
            metadata=EventMetadata(correlation_id="c-1", tenant_id="t1"),
        )

        wire = envelope.to_wire()

        assert set(wire) == {"eventId", "eventType", "timestamp", "payload", "metadata"}
        assert wire["metadata"] == {
            "correlationId": "c-1",
            "userId": None,
            "tenantId": "t1",
            "source": EventSource.API.value,
            "retryCount": 0,
        }

    def test_from_wire_restores_envelope(self):
        envelope = EventEnvelope(
            event_type="ITEM_DELETE_REQUESTED",
            payload={"id": "i1"},
            metadata=EventMetadata(correlation_id="c-2"),
        )

        restored = EventEnvelope.from_wire(envelope.to_wire())

        assert restored.event_id == envelope.event_id
        assert restored.correlation_id == "c-2"

    def test_envelope_is_immutable(self):
        envelope = EventEnvelope(event_type="X", metadata=EventMetadata(correlation_id="c"))

        with pytest.raises(ValidationError):
            envelope.event_type = "Y"

    def test_event_ids_are_unique(self):
        metadata = EventMetadata(correlation_id="c")
        assert EventEnvelope(event_type="X", metadata=metadata).event_id != EventEnvelope(
            event_type="X", metadata=metadata
        ).event_id


class TestPayloads:
    def test_partial_update_only_carries_provided_fields(self):
        payload = CustomerUpdatePayload(id="c1", name="Grace")

        assert payload_to_wire(payload) == {"id": "c1", "name": "Grace"}

    def test_update_without_fields_is_rejected(self):
        with pytest.raises(ValidationError):
            CustomerUpdatePayload(id="c1")

    def test_quantity_payload_reads_camel_case(self):
        payload = ItemQuantityUpdatePayload.model_validate(
            {"id": "i1", "quantity": 3, "operation": "subtract"}
        )

        assert payload.quantity == 3
        assert payload.operation.value == "subtract"
