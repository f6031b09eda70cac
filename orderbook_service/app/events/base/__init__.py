"""
Orderbook event envelope and broker interfaces.

Every unit of work crossing the broker is an ``EventEnvelope``. The
envelope is immutable once built; request and outcome envelopes share a
``correlation_id`` so callers can match an accepted write to its result.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

P = TypeVar("P", bound=BaseModel)


def new_event_id() -> str:
    return str(uuid.uuid4())


class EventSource(str, Enum):
    API = "API"
    PROCESSOR = "PROCESSOR"
    BROADCASTER = "BROADCASTER"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        use_enum_values=True,
    )


class EventMetadata(_WireModel):
    correlation_id: str
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None
    source: EventSource = EventSource.API
    retry_count: int = 0


class EventEnvelope(_WireModel):
    """Structured message wrapping every event on the broker"""

    event_id: str = Field(default_factory=new_event_id)
    event_type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Dict[str, Any] = Field(default_factory=dict)
    metadata: EventMetadata

    @property
    def correlation_id(self) -> str:
        return self.metadata.correlation_id

    def payload_as(self, model: Type[P]) -> P:
        """Validate the payload against its typed model."""
        return model.model_validate(self.payload)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "EventEnvelope":
        return cls.model_validate(data)


EventHandler = Callable[[EventEnvelope], Awaitable[Any]]


class EventPublisher(ABC):
    """Abstract base class for event publishers"""

    @abstractmethod
    async def publish(
        self, topic: str, envelope: EventEnvelope, key: Optional[str] = None
    ) -> EventEnvelope:
        """Publish an envelope and wait for the broker acknowledgement"""
        pass


class EventBroker(EventPublisher):
    """Connect, publish, subscribe and consume over one message broker"""

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def subscribe(
        self, topic: str, handler: EventHandler, group_id: Optional[str] = None
    ) -> None:
        """Register the handler invoked once per message consumed from ``topic``"""
        pass

    @abstractmethod
    async def start_consuming(self) -> None:
        pass

    @abstractmethod
    async def stop_consuming(self, grace_period: float) -> None:
        """Stop polling and drain in-flight handlers within ``grace_period``"""
        pass

    @abstractmethod
    async def disconnect(self, grace_period: float = 10.0) -> None:
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    @property
    @abstractmethod
    def is_consuming(self) -> bool:
        pass
