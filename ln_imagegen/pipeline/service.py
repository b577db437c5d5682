"""
Image Generation Service
========================
Wires the pipeline together and owns its lifecycle.

Usage:
    service = ImageGenService(repository, sessions, users, payments, chat)
    await service.start()
    # ... webhooks and chat updates flow in ...
    await service.stop()
"""

import asyncio
from typing import Optional

import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.pipeline.delivery import Deliverer
from ln_imagegen.pipeline.dispatcher import PaymentEventDispatcher
from ln_imagegen.pipeline.invoice_gate import InvoiceGate
from ln_imagegen.pipeline.orchestrator import ClientFactory, JobOrchestrator, Sleep
from ln_imagegen.pipeline.payments import PaymentListener
from ln_imagegen.pipeline.polling import PollPolicy
from ln_imagegen.pipeline.prompt_collector import PromptCollector
from ln_imagegen.pipeline.refund import RefundCompensator
from ln_imagegen.pipeline.state_machine import InvoiceStateMachine
from ln_imagegen.services.lnbits_client import IPaymentProvider
from ln_imagegen.services.qr import QrRenderer
from ln_imagegen.services.telegram_transport import IChatTransport
from ln_imagegen.storage.artifact_cache import ArtifactCache
from ln_imagegen.storage.audit_log import IAuditLog, InMemoryAuditLog
from ln_imagegen.storage.invoice_repository import IInvoiceRepository
from ln_imagegen.storage.session_store import ISessionStore
from ln_imagegen.storage.users import IUserDirectory
from ln_imagegen.tasks.cache_janitor import CacheJanitor


class ImageGenService:

    def __init__(
        self,
        repository: IInvoiceRepository,
        sessions: ISessionStore,
        users: IUserDirectory,
        payments: IPaymentProvider,
        chat: IChatTransport,
        audit_log: Optional[IAuditLog] = None,
        client_factory: Optional[ClientFactory] = None,
        poll_policy: Optional[PollPolicy] = None,
        qr: Optional[QrRenderer] = None,
        config: Optional[Settings] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.config = config or settings
        self.repository = repository
        self.sessions = sessions
        self.users = users
        self.payments = payments
        self.chat = chat
        self.audit_log = audit_log or InMemoryAuditLog()

        self.state_machine = InvoiceStateMachine(repository, self.audit_log)
        self.cache = ArtifactCache(self.config.ARTIFACT_DIR)
        self.deliverer = Deliverer(chat, self.cache, self.config)
        self.refunds = RefundCompensator(self.state_machine, payments, chat, self.config)
        self.orchestrator = JobOrchestrator(
            self.state_machine,
            self.deliverer,
            self.refunds,
            chat,
            client_factory=client_factory,
            poll_policy=poll_policy,
            config=self.config,
            sleep=sleep or asyncio.sleep,
        )
        self.dispatcher = PaymentEventDispatcher(self.orchestrator.run)
        self.listener = PaymentListener(self.state_machine, payments, self.dispatcher, self.config)
        self.gate = InvoiceGate(repository, payments, chat, self.listener, qr, self.config)
        self.collector = PromptCollector(sessions, chat, self.gate, self.config)
        self.janitor = CacheJanitor(self.cache, self.config)

        self._logger = structlog.get_logger().bind(component="imagegen_service")

    async def start(self) -> None:
        self._logger.info("starting_service")
        self.cache.ensure()
        await self.dispatcher.start()
        self.janitor.start()
        self._logger.info("service_started")

    async def stop(self, drain_timeout: Optional[float] = None) -> None:
        self._logger.info("stopping_service")
        await self.janitor.stop()
        await self.dispatcher.stop(drain_timeout=drain_timeout)
        self._logger.info("service_stopped")

    async def health_check(self) -> dict:
        return {
            "dispatcher": await self.dispatcher.health_check(),
            "jobs_in_flight": self.dispatcher.in_flight,
            "janitor": self.janitor.stats(),
        }
