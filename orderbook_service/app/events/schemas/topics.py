"""
Topic names and the closed set of request event types.

Request types follow ``<NOUN>_<VERB>_REQUESTED`` and travel on a request
topic. The processor answers each one on the paired outcome topic with
``<NOUN>_<VERB>_SUCCESS`` or ``<NOUN>_<VERB>_FAILED``.
"""

from enum import Enum
from typing import Dict, Tuple

REQUESTED_SUFFIX = "_REQUESTED"
SUCCESS_SUFFIX = "_SUCCESS"
FAILED_SUFFIX = "_FAILED"


class Topic(str, Enum):
    CUSTOMER_EVENTS = "customer-events"
    ITEM_EVENTS = "item-events"
    ORDER_EVENTS = "order-events"
    CUSTOMER_UPDATES = "customer-updates"
    ITEM_UPDATES = "item-updates"
    ORDER_UPDATES = "order-updates"


OUTCOME_TOPIC_FOR: Dict[Topic, Topic] = {
    Topic.CUSTOMER_EVENTS: Topic.CUSTOMER_UPDATES,
    Topic.ITEM_EVENTS: Topic.ITEM_UPDATES,
    Topic.ORDER_EVENTS: Topic.ORDER_UPDATES,
}

REQUEST_TOPICS: Tuple[Topic, ...] = tuple(OUTCOME_TOPIC_FOR.keys())
OUTCOME_TOPICS: Tuple[Topic, ...] = tuple(OUTCOME_TOPIC_FOR.values())
ALL_TOPICS: Tuple[Topic, ...] = REQUEST_TOPICS + OUTCOME_TOPICS


class RequestEventType(str, Enum):
    CUSTOMER_CREATE_REQUESTED = "CUSTOMER_CREATE_REQUESTED"
    CUSTOMER_UPDATE_REQUESTED = "CUSTOMER_UPDATE_REQUESTED"
    CUSTOMER_DELETE_REQUESTED = "CUSTOMER_DELETE_REQUESTED"
    ITEM_CREATE_REQUESTED = "ITEM_CREATE_REQUESTED"
    ITEM_UPDATE_REQUESTED = "ITEM_UPDATE_REQUESTED"
    ITEM_QUANTITY_UPDATE_REQUESTED = "ITEM_QUANTITY_UPDATE_REQUESTED"
    ITEM_DELETE_REQUESTED = "ITEM_DELETE_REQUESTED"
    ORDER_CREATE_REQUESTED = "ORDER_CREATE_REQUESTED"
    ORDER_UPDATE_REQUESTED = "ORDER_UPDATE_REQUESTED"
    ORDER_CANCEL_REQUESTED = "ORDER_CANCEL_REQUESTED"
    ORDER_DELETE_REQUESTED = "ORDER_DELETE_REQUESTED"

    @property
    def topic(self) -> Topic:
        return _TOPIC_BY_NOUN[self.value.split("_", 1)[0]]

    @property
    def outcome_topic(self) -> Topic:
        return OUTCOME_TOPIC_FOR[self.topic]

    @property
    def base_name(self) -> str:
        """``<NOUN>_<VERB>`` part of the type"""
        return self.value[: -len(REQUESTED_SUFFIX)]

    def outcome_type(self, success: bool) -> str:
        return self.base_name + (SUCCESS_SUFFIX if success else FAILED_SUFFIX)


_TOPIC_BY_NOUN: Dict[str, Topic] = {
    "CUSTOMER": Topic.CUSTOMER_EVENTS,
    "ITEM": Topic.ITEM_EVENTS,
    "ORDER": Topic.ORDER_EVENTS,
}


def parse_request_type(value: str) -> RequestEventType | None:
    try:
        return RequestEventType(value)
    except ValueError:
        return None
