from .payloads import (
    PAYLOAD_MODELS,
    CustomerCreatePayload,
    CustomerDeletePayload,
    CustomerUpdatePayload,
    EntityPayload,
    ItemCreatePayload,
    ItemDeletePayload,
    ItemQuantityUpdatePayload,
    ItemUpdatePayload,
    OrderCancelPayload,
    OrderCreatePayload,
    OrderDeletePayload,
    OrderUpdatePayload,
    OriginalEventRef,
    OutcomePayload,
    payload_to_wire,
)
from .topics import (
    ALL_TOPICS,
    OUTCOME_TOPIC_FOR,
    OUTCOME_TOPICS,
    REQUEST_TOPICS,
    RequestEventType,
    Topic,
    parse_request_type,
)

__all__ = [
    "ALL_TOPICS",
    "OUTCOME_TOPIC_FOR",
    "OUTCOME_TOPICS",
    "PAYLOAD_MODELS",
    "REQUEST_TOPICS",
    "CustomerCreatePayload",
    "CustomerDeletePayload",
    "CustomerUpdatePayload",
    "EntityPayload",
    "ItemCreatePayload",
    "ItemDeletePayload",
    "ItemQuantityUpdatePayload",
    "ItemUpdatePayload",
    "OrderCancelPayload",
    "OrderCreatePayload",
    "OrderDeletePayload",
    "OrderUpdatePayload",
    "OriginalEventRef",
    "OutcomePayload",
    "RequestEventType",
    "Topic",
    "parse_request_type",
    "payload_to_wire",
]
