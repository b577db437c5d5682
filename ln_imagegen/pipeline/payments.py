"""
Payment Listener
================
Turns settled invoices into PaidInvoiceEvents.

LNbits calls the webhook once per settlement, but may call it again. The
listener verifies the payment with LNbits, then moves the invoice
CREATED -> PAID. Only the caller that wins that transition publishes an
event; a redelivered notification is acknowledged and dropped.
"""

from typing import Optional

import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import PaymentProviderError
from ln_imagegen.pipeline.dispatcher import IEventPublisher
from ln_imagegen.pipeline.state_machine import InvoiceStateMachine
from ln_imagegen.schemas.events import PaidInvoiceEvent, PaidInvoicePayload
from ln_imagegen.schemas.models import Invoice, InvoiceStatus, utcnow
from ln_imagegen.services.lnbits_client import IPaymentProvider

logger = structlog.get_logger().bind(component="payment_listener")


class PaymentListener:

    def __init__(
        self,
        state_machine: InvoiceStateMachine,
        payments: IPaymentProvider,
        publisher: IEventPublisher,
        config: Optional[Settings] = None,
    ):
        self.state_machine = state_machine
        self.repository = state_machine.repository
        self.payments = payments
        self.publisher = publisher
        self.config = config or settings

    async def on_webhook(self, payment_hash: str) -> Optional[Invoice]:
        """
        Handle an LNbits payment notification.

        Returns the invoice when this call confirmed it, None when the hash
        is unknown, unpaid or already confirmed.
        """
        log = logger.bind(payment_hash=payment_hash)
        invoice = await self.repository.get_by_payment_hash(payment_hash)
        if invoice is None:
            log.warning("webhook_unknown_invoice")
            return None
        if invoice.status != InvoiceStatus.CREATED:
            log.info("webhook_redelivered", invoice_id=invoice.invoice_id, status=invoice.status.value)
            return None

        try:
            paid = await self.payments.is_paid(self.config.service_wallet(), payment_hash)
        except PaymentProviderError as e:
            log.error("payment_verification_failed", invoice_id=invoice.invoice_id, error=str(e))
            raise
        if not paid:
            log.warning("webhook_unpaid_invoice", invoice_id=invoice.invoice_id)
            return None

        return await self.confirm_paid(invoice.invoice_id)

    async def confirm_paid(self, invoice_id: str) -> Optional[Invoice]:
        """Mark a verified invoice PAID and publish exactly one event"""
        updated = await self.state_machine.transition(
            invoice_id, InvoiceStatus.PAID, actor="payment_listener", paid_at=utcnow()
        )
        if updated is None:
            logger.info("payment_already_confirmed", invoice_id=invoice_id)
            return None

        event = PaidInvoiceEvent(
            correlation_id=updated.invoice_id,
            payload=PaidInvoicePayload(
                invoice_id=updated.invoice_id,
                payer=updated.payer,
                prompt=updated.payload,
                amount=updated.amount,
                paid_internally=updated.paid_internally,
            ),
        )
        await self.publisher.publish(event)
        logger.info("payment_confirmed",
                    invoice_id=updated.invoice_id,
                    amount=updated.amount,
                    paid_internally=updated.paid_internally)
        return updated
