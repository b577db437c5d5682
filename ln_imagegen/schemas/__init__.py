# schemas/__init__.py
from ln_imagegen.schemas.models import (
    AuditLogEntry,
    ChatMessageRef,
    DeliveryReport,
    GenerationArtifact,
    Invoice,
    InvoiceStatus,
    Job,
    JobOutcome,
    JobStatus,
    PromptSession,
    RefundOutcome,
    RefundRecord,
    SessionState,
    User,
    Wallet,
    utcnow,
)
from ln_imagegen.schemas.events import (
    BaseEvent,
    EventType,
    PaidInvoiceEvent,
    PaidInvoicePayload,
)

__all__ = [
    # Models
    "AuditLogEntry",
    "ChatMessageRef",
    "DeliveryReport",
    "GenerationArtifact",
    "Invoice",
    "InvoiceStatus",
    "Job",
    "JobOutcome",
    "JobStatus",
    "PromptSession",
    "RefundOutcome",
    "RefundRecord",
    "SessionState",
    "User",
    "Wallet",
    "utcnow",
    # Events
    "BaseEvent",
    "EventType",
    "PaidInvoiceEvent",
    "PaidInvoicePayload",
]
