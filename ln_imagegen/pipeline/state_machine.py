"""
Invoice State Machine
=====================
CREATED -> PAID -> SUBMITTED -> {DELIVERED | REFUNDED}

PAID -> REFUNDED covers failures before the job could be submitted.
Every transition is a compare-and-set on the repository: when two tasks
race for the same transition, the first wins and the other gets ``None``.
"""

from typing import Any, Optional

import structlog

from ln_imagegen.errors import InvalidTransitionError
from ln_imagegen.schemas.models import AuditLogEntry, Invoice, InvoiceStatus
from ln_imagegen.storage.audit_log import IAuditLog
from ln_imagegen.storage.invoice_repository import IInvoiceRepository

logger = structlog.get_logger().bind(component="invoice_state_machine")


ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PAID: frozenset({InvoiceStatus.CREATED}),
    InvoiceStatus.SUBMITTED: frozenset({InvoiceStatus.PAID}),
    InvoiceStatus.DELIVERED: frozenset({InvoiceStatus.SUBMITTED}),
    InvoiceStatus.REFUNDED: frozenset({InvoiceStatus.PAID, InvoiceStatus.SUBMITTED}),
}


class InvoiceStateMachine:

    def __init__(self, repository: IInvoiceRepository, audit_log: Optional[IAuditLog] = None):
        self.repository = repository
        self.audit_log = audit_log

    @staticmethod
    def sources(new_status: InvoiceStatus) -> frozenset[InvoiceStatus]:
        try:
            return ALLOWED_TRANSITIONS[new_status]
        except KeyError:
            raise InvalidTransitionError(f"No transition leads to {new_status.value}") from None

    async def transition(
        self,
        invoice_id: str,
        new_status: InvoiceStatus,
        actor: str = "system",
        **changes: Any,
    ) -> Optional[Invoice]:
        """
        Move an invoice to new_status.

        Returns the updated invoice, or None when the invoice is missing or
        another task already moved it out of an allowed source state.
        """
        expected = self.sources(new_status)
        stored, updated = await self.repository.compare_and_set(
            invoice_id, expected, new_status, **changes
        )
        if stored is None:
            logger.warning("invoice_not_found", invoice_id=invoice_id, target=new_status.value)
            return None
        if updated is None:
            logger.info("transition_lost",
                        invoice_id=invoice_id,
                        current=stored.status.value,
                        target=new_status.value)
            return None

        if self.audit_log is not None:
            await self.audit_log.append(AuditLogEntry(
                invoice_id=invoice_id,
                previous_status=stored.status,
                new_status=new_status,
                actor=actor,
                metadata={"version": updated.version},
            ))
        logger.info("invoice_transitioned",
                    invoice_id=invoice_id,
                    previous=stored.status.value,
                    new=new_status.value,
                    actor=actor)
        return updated
