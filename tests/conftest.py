"""Shared test fixtures and fakes for ln_imagegen."""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import pytest

from ln_imagegen.config import Settings
from ln_imagegen.errors import ChatTransportError, PaymentProviderError, ProviderError
from ln_imagegen.schemas.events import PaidInvoiceEvent
from ln_imagegen.schemas.models import (
    ChatMessageRef,
    GenerationArtifact,
    Job,
    JobStatus,
    User,
    Wallet,
)
from ln_imagegen.services.generation_client import IGenerationProvider
from ln_imagegen.services.lnbits_client import IPaymentProvider, LNbitsInvoice, PaymentResult
from ln_imagegen.services.telegram_transport import IChatTransport
from ln_imagegen.storage import InMemoryAuditLog, InMemoryInvoiceRepository, InMemorySessionStore

PRICE = 1000


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeChat(IChatTransport):
    """Records every outbound chat call"""

    def __init__(self, failing_photo_calls: Optional[set[int]] = None):
        self.messages: list[tuple[int, str, bool]] = []
        self.photos: list[tuple[int, bytes, Optional[str]]] = []
        self.photo_handles: list = []
        self.edits: list[tuple[ChatMessageRef, str]] = []
        self.failing_photo_calls = failing_photo_calls or set()
        self._photo_calls = 0
        self._next_id = 100

    def _ref(self, chat_id: int) -> ChatMessageRef:
        self._next_id += 1
        return ChatMessageRef(chat_id=chat_id, message_id=self._next_id)

    async def send_message(self, chat_id, text, force_reply=False):
        self.messages.append((chat_id, text, force_reply))
        return self._ref(chat_id)

    async def send_photo(self, chat_id, photo, caption=None):
        self._photo_calls += 1
        self.photo_handles.append(photo)
        if self._photo_calls in self.failing_photo_calls:
            raise ChatTransportError("sendPhoto refused: Bad Request")
        self.photos.append((chat_id, photo.read(), caption))
        return self._ref(chat_id)

    async def edit_message(self, ref, text):
        self.edits.append((ref, text))

    def texts(self) -> list[str]:
        return [text for _, text, _ in self.messages]


class FakeLNbits(IPaymentProvider):
    """In-memory LNbits: balances per wallet id, created and paid invoices"""

    def __init__(self, balances: Optional[dict[str, int]] = None):
        self.balances = balances or {}
        self.created: list[dict] = []
        self.payments: list[tuple[str, str]] = []
        self.settled: set[str] = set()
        self.fail_create = False
        self.fail_pay = False
        self.fail_balance = False
        self._counter = 0

    async def create_invoice(self, wallet, amount, memo, webhook=None):
        if self.fail_create:
            raise PaymentProviderError("POST /api/v1/payments returned 500", status_code=500)
        self._counter += 1
        invoice = LNbitsInvoice(
            payment_hash=f"hash-{self._counter}",
            payment_request=f"lnbc{amount}n1fake{self._counter}",
        )
        self.created.append({
            "wallet_id": wallet.wallet_id,
            "amount": amount,
            "memo": memo,
            "webhook": webhook,
            "payment_hash": invoice.payment_hash,
            "payment_request": invoice.payment_request,
        })
        return invoice

    async def pay(self, wallet, payment_request):
        if self.fail_pay:
            raise PaymentProviderError("POST /api/v1/payments returned 520", status_code=520)
        self.payments.append((wallet.wallet_id, payment_request))
        match = next(c for c in self.created if c["payment_request"] == payment_request)
        self.settled.add(match["payment_hash"])
        return PaymentResult(payment_hash=match["payment_hash"])

    async def get_balance(self, wallet):
        if self.fail_balance:
            raise PaymentProviderError("GET /api/v1/wallet failed: timeout")
        return self.balances.get(wallet.wallet_id, 0)

    async def is_paid(self, wallet, payment_hash):
        return payment_hash in self.settled


class FakeGenerationClient(IGenerationProvider):
    """Scripted provider: submit returns PENDING, polls walk through statuses"""

    def __init__(
        self,
        statuses: Optional[list[JobStatus]] = None,
        artifacts: Optional[dict[str, bytes]] = None,
        failing_downloads: Optional[set[str]] = None,
        submit_error: Optional[Exception] = None,
        hang_on_poll: bool = False,
    ):
        self.statuses = list(statuses or [JobStatus.SUCCEEDED])
        self.images = artifacts or {}
        self.failing_downloads = failing_downloads or set()
        self.submit_error = submit_error
        self.hang_on_poll = hang_on_poll
        self.submitted: list[str] = []
        self.polls = 0
        self.downloads: list[str] = []
        self.open_streams = 0
        self.poll_cancelled = False
        self.closed = False

    def _job(self, status: JobStatus) -> Job:
        artifacts = []
        if status == JobStatus.SUCCEEDED:
            artifacts = [GenerationArtifact(artifact_id=a, task_id="task-1") for a in self.images]
        return Job(job_id="task-1", status=status, artifacts=artifacts)

    async def submit(self, prompt):
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(prompt)
        return self._job(JobStatus.PENDING)

    async def get_status(self, job_id):
        self.polls += 1
        if self.hang_on_poll:
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.poll_cancelled = True
                raise
        index = min(self.polls, len(self.statuses)) - 1
        return self._job(self.statuses[index])

    @asynccontextmanager
    async def download(self, artifact_id):
        self.downloads.append(artifact_id)
        if artifact_id in self.failing_downloads:
            raise ProviderError(f"GET /generations/{artifact_id}/download returned 404")
        data = self.images[artifact_id]

        async def chunks():
            for i in range(0, len(data), 7):
                yield data[i:i + 7]

        self.open_streams += 1
        try:
            yield chunks()
        finally:
            self.open_streams -= 1

    async def aclose(self):
        self.closed = True


class RecordingPublisher:
    def __init__(self):
        self.events: list[PaidInvoiceEvent] = []

    async def publish(self, event):
        self.events.append(event)
        return True


async def no_sleep(_delay: float) -> None:
    await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config(tmp_path: Path) -> Settings:
    cfg = Settings()
    cfg.GENERATE_PRICE_SAT = PRICE
    cfg.GENERATE_API_KEY = "test-key"
    cfg.SERVICE_WALLET_ID = "service"
    cfg.SERVICE_WALLET_ADMIN_KEY = "service-admin"
    cfg.SERVICE_WALLET_INVOICE_KEY = "service-invoice"
    cfg.WEBHOOK_BASE_URL = "https://bot.example.com"
    cfg.ARTIFACT_DIR = str(tmp_path / "dalle")
    cfg.ARTIFACT_DELETE_AFTER_SEND = True
    cfg.JOB_DEADLINE_SECONDS = 5.0
    cfg.SESSION_TTL_SECONDS = 300
    cfg.JANITOR_ENABLED = False
    cfg.REDIS_URL = ""
    cfg.USER_DIRECTORY_FILE = ""
    cfg.TELEGRAM_WEBHOOK_SECRET = "tg-secret"
    return cfg


@pytest.fixture
def alice() -> User:
    return User(
        user_id="42",
        chat_id=42,
        username="alice",
        wallet=Wallet(wallet_id="alice-wallet", admin_key="alice-admin", invoice_key="alice-invoice"),
    )


@pytest.fixture
def walletless() -> User:
    return User(user_id="7", chat_id=7, username="bob")


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()


@pytest.fixture
def lnbits() -> FakeLNbits:
    return FakeLNbits()


@pytest.fixture
def repository() -> InMemoryInvoiceRepository:
    return InMemoryInvoiceRepository()


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()
