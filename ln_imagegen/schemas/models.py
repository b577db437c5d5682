"""
Domain Models
=============
Invoices, generation jobs, artifacts, refunds and prompt-capture sessions.

The invoice is the only long-lived record. Its status moves through
CREATED -> PAID -> SUBMITTED -> {DELIVERED | REFUNDED}; see
``pipeline.state_machine`` for the allowed transitions.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, Field, computed_field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class InvoiceStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    SUBMITTED = "submitted"
    DELIVERED = "delivered"
    REFUNDED = "refunded"


class JobStatus(str, Enum):
    """Task status as reported by the generation provider"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"


class JobOutcome(str, Enum):
    """How a submit/poll sequence ended"""
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


class RefundOutcome(str, Enum):
    ISSUED = "issued"
    INVOICE_FAILED = "invoice_failed"
    PAYMENT_FAILED = "payment_failed"


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_PROMPT = "awaiting_prompt"


# =============================================================================
# USERS AND CHAT
# =============================================================================

class Wallet(BaseModel):
    """LNbits wallet credentials"""
    wallet_id: str
    admin_key: str
    invoice_key: str


class User(BaseModel):
    user_id: str
    chat_id: int
    username: Optional[str] = None
    wallet: Optional[Wallet] = None

    @computed_field
    @property
    def display_name(self) -> str:
        return f"@{self.username}" if self.username else self.user_id


class ChatMessageRef(BaseModel):
    """Reference to a sent chat message, kept for later edits"""
    chat_id: int
    message_id: int


# =============================================================================
# INVOICE
# =============================================================================

class RefundRecord(BaseModel):
    invoice_id: str
    issued_at: datetime = Field(default_factory=utcnow)
    outcome: RefundOutcome
    reason: str
    error: Optional[str] = None
    payment_hash: Optional[str] = None


class Invoice(BaseModel):
    """Priced request for payment bound to a generation prompt"""

    IMMUTABLE_FIELDS: ClassVar[frozenset] = frozenset(
        {"invoice_id", "payment_hash", "payment_request", "amount", "payload", "payer"}
    )

    invoice_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    payment_hash: str
    payment_request: str
    amount: int
    memo: str
    status: InvoiceStatus = InvoiceStatus.CREATED
    payer: User
    payload: str
    invoice_message: Optional[ChatMessageRef] = None
    paid_internally: bool = False
    job_id: Optional[str] = None
    refund: Optional[RefundRecord] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    paid_at: Optional[datetime] = None
    version: int = 1

    @computed_field
    @property
    def is_paid(self) -> bool:
        return self.status != InvoiceStatus.CREATED

    def with_changes(self, **changes: Any) -> "Invoice":
        """Copy with mutable fields updated; amount and payload stay fixed"""
        frozen = self.IMMUTABLE_FIELDS.intersection(changes)
        if frozen:
            raise ValueError(f"Immutable invoice fields: {sorted(frozen)}")
        return self.model_copy(update={
            **changes,
            "updated_at": utcnow(),
            "version": self.version + 1,
        })

    def transition_to(self, new_status: InvoiceStatus, **changes: Any) -> "Invoice":
        return self.with_changes(status=new_status, **changes)


# =============================================================================
# GENERATION JOB
# =============================================================================

class GenerationArtifact(BaseModel):
    artifact_id: str
    task_id: Optional[str] = None


class Job(BaseModel):
    job_id: str
    status: JobStatus = JobStatus.PENDING
    artifacts: list[GenerationArtifact] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _unknown_status_is_pending(cls, value: Any) -> Any:
        if isinstance(value, JobStatus):
            return value
        try:
            return JobStatus(str(value).lower())
        except ValueError:
            return JobStatus.PENDING

    @classmethod
    def from_provider(cls, data: dict) -> "Job":
        """Parse a provider task object"""
        generations = (data.get("generations") or {}).get("data") or []
        return cls(
            job_id=data["id"],
            status=data.get("status", JobStatus.PENDING),
            artifacts=[
                GenerationArtifact(artifact_id=g["id"], task_id=g.get("task_id"))
                for g in generations
            ],
        )


class DeliveryReport(BaseModel):
    delivered: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


# =============================================================================
# PROMPT SESSION
# =============================================================================

class PromptSession(BaseModel):
    """Two-step prompt capture state for one user"""
    user_id: str
    state: SessionState = SessionState.IDLE
    expires_at: Optional[datetime] = None

    def is_awaiting(self, now: Optional[datetime] = None) -> bool:
        if self.state != SessionState.AWAITING_PROMPT:
            return False
        if self.expires_at is None:
            return True
        return (now or utcnow()) < self.expires_at


# =============================================================================
# AUDIT
# =============================================================================

class AuditLogEntry(BaseModel):
    """Immutable record of one invoice transition"""
    log_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    invoice_id: str
    previous_status: Optional[InvoiceStatus] = None
    new_status: InvoiceStatus
    actor: str = "system"
    metadata: dict = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
