# pipeline/orchestrator.py
# ============================================================================
# LN IMAGEGEN - JOB ORCHESTRATOR
# ============================================================================
# Runs one generation job per PaidInvoiceEvent:
#   claim (PAID -> SUBMITTED) -> submit -> poll -> deliver | refund
#
# FAILURE HANDLING:
# - Submission and polling share one wall-clock deadline
# - Polls back off exponentially and stop after a fixed attempt count
# - Rejection, attempt exhaustion, deadline and provider errors all refund
# - Any other failure after the claim refunds too; nothing but cancellation
#   is raised back to the dispatcher
# - A job where no artifact reached the payer is refunded
# ============================================================================

import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional

import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import ChatTransportError, ProviderError
from ln_imagegen.pipeline import messages
from ln_imagegen.pipeline.delivery import Deliverer
from ln_imagegen.pipeline.polling import PollPolicy
from ln_imagegen.pipeline.refund import RefundCompensator
from ln_imagegen.pipeline.state_machine import InvoiceStateMachine
from ln_imagegen.schemas.events import PaidInvoiceEvent
from ln_imagegen.schemas.models import Invoice, InvoiceStatus, Job, JobOutcome, JobStatus, User
from ln_imagegen.services.generation_client import GenerationClient, IGenerationProvider
from ln_imagegen.services.telegram_transport import IChatTransport

logger = structlog.get_logger().bind(component="job_orchestrator")

ClientFactory = Callable[[], IGenerationProvider]
Sleep = Callable[[float], Awaitable[None]]


class JobOrchestrator:

    def __init__(
        self,
        state_machine: InvoiceStateMachine,
        deliverer: Deliverer,
        refunds: RefundCompensator,
        chat: IChatTransport,
        client_factory: Optional[ClientFactory] = None,
        poll_policy: Optional[PollPolicy] = None,
        config: Optional[Settings] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config or settings
        self.state_machine = state_machine
        self.repository = state_machine.repository
        self.deliverer = deliverer
        self.refunds = refunds
        self.chat = chat
        self.client_factory = client_factory or (lambda: GenerationClient.from_settings(self.config))
        self.poll_policy = poll_policy or PollPolicy.from_settings(self.config)
        self._sleep = sleep

    async def _notify(self, chat_id: int, text: str, log) -> None:
        try:
            await self.chat.send_message(chat_id, text)
        except ChatTransportError as e:
            log.warning("notify_failed", error=str(e))

    async def run(self, event: PaidInvoiceEvent) -> Optional[JobOutcome]:
        """
        Process one paid invoice.

        Returns the job outcome, or None when the event was not acted on
        (payer without wallet, or the invoice was already claimed).

        Once the invoice is claimed every exit path ends in DELIVERED or in a
        refund attempt. Cancellation (shutdown) refunds and is re-raised.
        """
        payload = event.payload
        payer = payload.payer
        log = logger.bind(invoice_id=payload.invoice_id,
                          correlation_id=event.correlation_id,
                          user_id=payer.user_id)

        if payer.wallet is None:
            log.error("job_stuck_payer_without_wallet")
            return None

        claimed = await self.state_machine.transition(
            payload.invoice_id, InvoiceStatus.SUBMITTED, actor="job_orchestrator"
        )
        if claimed is None:
            log.warning("duplicate_paid_event", event_id=event.event_id)
            return None

        try:
            return await self._process(claimed, payer, log)
        except asyncio.CancelledError:
            log.warning("job_cancelled")
            await asyncio.shield(self.refunds.refund(claimed, reason="cancelled"))
            raise
        except Exception as e:
            log.error("job_unexpected_error", error=str(e), error_type=type(e).__name__, exc_info=True)
            await self.refunds.refund(claimed, reason=JobOutcome.ERRORED.value)
            return JobOutcome.ERRORED

    async def _process(self, claimed: Invoice, payer: User, log) -> JobOutcome:
        await self._notify(payer.chat_id, messages.GENERATING, log)

        try:
            provider = self.client_factory()
        except ProviderError as e:
            log.error("provider_client_unavailable", error=str(e))
            await self.refunds.refund(claimed, reason=f"client construction failed: {e}")
            return JobOutcome.ERRORED

        try:
            outcome, job = await self._generate(provider, claimed, log)
            if outcome != JobOutcome.SUCCEEDED:
                await self.refunds.refund(claimed, reason=outcome.value)
                return outcome

            report = await self.deliverer.deliver(provider, job.artifacts, payer)
            if not report.delivered:
                log.error("job_nothing_delivered", failed=len(report.failed))
                await self.refunds.refund(claimed, reason="undelivered")
                return JobOutcome.ERRORED

            await self.state_machine.transition(
                claimed.invoice_id, InvoiceStatus.DELIVERED, actor="job_orchestrator"
            )
            if report.failed:
                await self._notify(payer.chat_id, messages.DELIVERY_PARTIAL.format(
                    failed=len(report.failed), total=len(job.artifacts)), log)
            log.info("job_delivered", delivered=len(report.delivered), failed=len(report.failed))
            return outcome
        finally:
            await provider.aclose()


    async def _generate(
        self,
        provider: IGenerationProvider,
        invoice: Invoice,
        log,
    ) -> tuple[JobOutcome, Optional[Job]]:
        """Submit and poll under the job deadline"""
        deadline = self.config.JOB_DEADLINE_SECONDS
        job: Optional[Job] = None
        try:
            async with asyncio.timeout(deadline):
                job = await provider.submit(invoice.payload)
                await self.repository.update_fields(invoice.invoice_id, job_id=job.job_id)
                log = log.bind(job_id=job.job_id)

                for attempt, delay in enumerate(self.poll_policy.delays(), start=1):
                    await self._sleep(delay)
                    job = await provider.get_status(job.job_id)
                    if job.status == JobStatus.SUCCEEDED:
                        log.info("job_succeeded", attempts=attempt, artifacts=len(job.artifacts))
                        return JobOutcome.SUCCEEDED, job
                    if job.status == JobStatus.REJECTED:
                        log.error("job_rejected", attempts=attempt)
                        return JobOutcome.REJECTED, job
                    log.debug("job_pending", attempt=attempt)

                log.error("job_attempts_exhausted", max_attempts=self.poll_policy.max_attempts)
                return JobOutcome.TIMED_OUT, job

        except TimeoutError:
            error = ProviderError(f"Job deadline of {deadline}s exceeded")
            log.error("job_deadline_exceeded", error=str(error))
            return JobOutcome.ERRORED, job
        except ProviderError as e:
            log.error("job_provider_error", error=str(e))
            return JobOutcome.ERRORED, job
