"""
Refund Compensator
==================
Returns the price of a failed job to the payer.

The refund claims the invoice with a transition to REFUNDED first; only the
caller that wins the claim moves funds. Funds move in two legs:
1. Create a receivable invoice on the payer's wallet for the original amount
2. Pay it from the service wallet

Failures are recorded on the invoice and logged. They are never raised and
never retried.
"""

from typing import Optional, Union

import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import ChatTransportError, PaymentProviderError, RefundError
from ln_imagegen.pipeline import messages
from ln_imagegen.pipeline.state_machine import InvoiceStateMachine
from ln_imagegen.schemas.models import Invoice, InvoiceStatus, RefundOutcome, RefundRecord
from ln_imagegen.services.lnbits_client import IPaymentProvider
from ln_imagegen.services.telegram_transport import IChatTransport

logger = structlog.get_logger().bind(component="refund_compensator")


class RefundCompensator:

    def __init__(
        self,
        state_machine: InvoiceStateMachine,
        payments: IPaymentProvider,
        chat: IChatTransport,
        config: Optional[Settings] = None,
    ):
        self.state_machine = state_machine
        self.payments = payments
        self.chat = chat
        self.config = config or settings

    async def refund(self, invoice: Invoice, reason: str) -> Optional[RefundRecord]:
        """
        Refund one invoice.

        Returns None when another caller already refunded (or finished) the
        invoice; nothing is paid in that case.
        """
        log = logger.bind(invoice_id=invoice.invoice_id, reason=reason)
        claimed = await self.state_machine.transition(
            invoice.invoice_id,
            InvoiceStatus.REFUNDED,
            actor="refund_compensator",
        )
        if claimed is None:
            log.info("refund_skipped")
            return None

        record = await self._pay_back(claimed, reason, log)
        await self.state_machine.repository.update_fields(claimed.invoice_id, refund=record)
        await self._notify(claimed, record, log)
        return record

    async def _pay_back(self, invoice: Invoice, reason: str, log) -> RefundRecord:
        wallet = invoice.payer.wallet
        if wallet is None:
            return self._failed(invoice, reason, RefundOutcome.INVOICE_FAILED, "payer has no wallet", log)

        try:
            receivable = await self.payments.create_invoice(
                wallet, amount=invoice.amount, memo=self.config.REFUND_MEMO
            )
        except PaymentProviderError as e:
            return self._failed(invoice, reason, RefundOutcome.INVOICE_FAILED, e, log)

        try:
            await self.payments.pay(self.config.service_wallet(), receivable.payment_request)
        except PaymentProviderError as e:
            return self._failed(invoice, reason, RefundOutcome.PAYMENT_FAILED, e, log,
                                payment_hash=receivable.payment_hash)

        log.info("refund_issued",
                 amount=invoice.amount,
                 payment_hash=receivable.payment_hash,
                 user_id=invoice.payer.user_id)
        return RefundRecord(
            invoice_id=invoice.invoice_id,
            outcome=RefundOutcome.ISSUED,
            reason=reason,
            payment_hash=receivable.payment_hash,
        )

    @staticmethod
    def _failed(
        invoice: Invoice,
        reason: str,
        outcome: RefundOutcome,
        cause: Union[Exception, str],
        log,
        payment_hash: Optional[str] = None,
    ) -> RefundRecord:
        """Record a failed refund; the RefundError is logged with its cause and stored as text"""
        failure = RefundError(f"Refund of {invoice.amount} sat failed ({outcome.value}): {cause}")
        if isinstance(cause, Exception):
            failure.__cause__ = cause
        log.error("refund_failed",
                  outcome=outcome.value,
                  amount=invoice.amount,
                  user_id=invoice.payer.user_id,
                  exc_info=failure)
        return RefundRecord(
            invoice_id=invoice.invoice_id,
            outcome=outcome,
            reason=reason,
            error=str(failure),
            payment_hash=payment_hash,
        )

    async def _notify(self, invoice: Invoice, record: RefundRecord, log) -> None:
        template = (
            messages.GENERATION_FAILED_REFUNDED
            if record.outcome == RefundOutcome.ISSUED
            else messages.GENERATION_FAILED_NO_REFUND
        )
        try:
            await self.chat.send_message(invoice.payer.chat_id, template.format(amount=invoice.amount))
        except ChatTransportError as e:
            log.warning("notify_failed", error=str(e))
