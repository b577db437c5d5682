"""
Pipeline Events
===============
Typed events carried by the inbound payment queue.
"""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ln_imagegen.schemas.models import User, utcnow


class EventType(str, Enum):
    INVOICE_PAID = "invoice.paid"


class BaseEvent(BaseModel):
    """Base event schema - all events inherit from this"""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    timestamp: datetime = Field(default_factory=utcnow)
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source: str
    attempt_count: int = 0

    def to_message_body(self) -> bytes:
        return self.model_dump_json().encode()

    @classmethod
    def from_message_body(cls, body: bytes) -> "BaseEvent":
        return cls.model_validate_json(body)


class PaidInvoicePayload(BaseModel):
    invoice_id: str
    payer: User
    prompt: str
    amount: int
    paid_internally: bool = False


class PaidInvoiceEvent(BaseEvent):
    """Payment listener -> job orchestrator: invoice settled"""
    event_type: EventType = EventType.INVOICE_PAID
    source: str = "payment_listener"
    payload: PaidInvoicePayload
