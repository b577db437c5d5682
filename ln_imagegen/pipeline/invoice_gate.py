"""
Invoice Gate
============
Issues the priced invoice for a generation request and gets it paid.

The invoice is created on the service wallet and persisted together with
its prompt before the user ever sees it, so the paid notification can
recover everything from the invoice alone.

Two ways to pay:
- Balance covers the price: pay internally from the user's wallet and go
  straight to payment confirmation. No QR code is rendered.
- Otherwise: show the payment request as a QR photo and wait for the
  LNbits webhook.
"""

from typing import Optional

import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import (
    ChatTransportError,
    PaymentProviderError,
    PaymentSetupError,
    UserInputError,
)
from ln_imagegen.pipeline import messages
from ln_imagegen.pipeline.payments import PaymentListener
from ln_imagegen.schemas.models import ChatMessageRef, Invoice, User
from ln_imagegen.services.lnbits_client import IPaymentProvider
from ln_imagegen.services.qr import QrRenderer
from ln_imagegen.services.telegram_transport import IChatTransport
from ln_imagegen.storage.invoice_repository import IInvoiceRepository

logger = structlog.get_logger().bind(component="invoice_gate")


class InvoiceGate:

    def __init__(
        self,
        repository: IInvoiceRepository,
        payments: IPaymentProvider,
        chat: IChatTransport,
        listener: PaymentListener,
        qr: Optional[QrRenderer] = None,
        config: Optional[Settings] = None,
    ):
        self.repository = repository
        self.payments = payments
        self.chat = chat
        self.listener = listener
        self.qr = qr or QrRenderer()
        self.config = config or settings

    async def _notify(self, chat_id: int, text: str) -> Optional[ChatMessageRef]:
        try:
            return await self.chat.send_message(chat_id, text)
        except ChatTransportError as e:
            logger.warning("notify_failed", chat_id=chat_id, error=str(e))
            return None

    async def create_invoice(self, user: User, amount: int, memo: str, payload: str) -> Invoice:
        """Create and persist an invoice on the service wallet"""
        if user.wallet is None:
            raise UserInputError(f"User {user.user_id} has no wallet")
        if amount != self.config.GENERATE_PRICE_SAT:
            raise PaymentSetupError(
                f"Amount {amount} does not match price {self.config.GENERATE_PRICE_SAT}"
            )

        try:
            created = await self.payments.create_invoice(
                self.config.service_wallet(),
                amount=amount,
                memo=memo,
                webhook=self.config.webhook_url,
            )
        except PaymentProviderError as e:
            raise PaymentSetupError(f"Invoice creation failed: {e}") from e

        invoice = Invoice(
            payment_hash=created.payment_hash,
            payment_request=created.payment_request,
            amount=amount,
            memo=memo,
            payer=user,
            payload=payload,
        )
        await self.repository.save(invoice)
        logger.info("invoice_persisted",
                    invoice_id=invoice.invoice_id,
                    payment_hash=invoice.payment_hash,
                    user_id=user.user_id,
                    amount=amount)
        return invoice

    async def _balance(self, user: User) -> int:
        try:
            return await self.payments.get_balance(user.wallet)
        except PaymentProviderError as e:
            logger.warning("balance_lookup_failed", user_id=user.user_id, error=str(e))
            return 0

    async def request_generation(self, user: User, prompt: str) -> Invoice:
        """Issue the invoice for one prompt and start the matching payment path"""
        prompt = prompt.strip()
        if not prompt:
            raise UserInputError("Prompt is empty")

        memo = f"{self.config.GENERATE_MEMO_PREFIX} {user.display_name}"
        invoice = await self.create_invoice(
            user, self.config.GENERATE_PRICE_SAT, memo, payload=prompt
        )
        log = logger.bind(invoice_id=invoice.invoice_id, user_id=user.user_id)

        announcement = await self._notify(user.chat_id, messages.INVOICE_COMING)

        balance = await self._balance(user)
        if balance >= invoice.amount:
            return await self._pay_internally(invoice, log)

        try:
            photo = self.qr.render(invoice.payment_request)
            ref = await self.chat.send_photo(
                user.chat_id, photo, caption=invoice.payment_request
            )
        except (PaymentSetupError, ChatTransportError) as e:
            log.error("invoice_display_failed", error=str(e))
            if announcement is not None:
                try:
                    await self.chat.edit_message(announcement, messages.INVOICE_TRY_LATER)
                except ChatTransportError as edit_error:
                    log.warning("edit_failed", error=str(edit_error))
            raise PaymentSetupError(f"Could not show invoice: {e}") from e

        updated = await self.repository.update_fields(invoice.invoice_id, invoice_message=ref)
        log.info("invoice_shown", balance=balance)
        return updated or invoice

    async def _pay_internally(self, invoice: Invoice, log) -> Invoice:
        try:
            await self.payments.pay(invoice.payer.wallet, invoice.payment_request)
        except PaymentProviderError as e:
            log.error("internal_payment_failed", error=str(e))
            await self._notify(invoice.payer.chat_id, messages.PAYMENT_FAILED)
            raise PaymentSetupError(f"Internal payment failed: {e}") from e

        await self.repository.update_fields(invoice.invoice_id, paid_internally=True)
        log.info("invoice_paid_internally", amount=invoice.amount)
        await self._notify(invoice.payer.chat_id, messages.PAID_INTERNALLY.format(amount=invoice.amount))

        paid = await self.listener.confirm_paid(invoice.invoice_id)
        return paid or await self.repository.get(invoice.invoice_id) or invoice
