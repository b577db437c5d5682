"""
Image Generation Server
=======================
FastAPI surface of the service:
- LNbits payment webhook
- Telegram update intake (thin command dispatch)
- Invoice inspection
- Health monitoring

pip install fastapi uvicorn pydantic redis structlog httpx
"""

import hmac
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from ln_imagegen import __version__
from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import (
    ChatTransportError,
    PaymentProviderError,
    PaymentSetupError,
    UserInputError,
)
from ln_imagegen.log_config import configure_logging
from ln_imagegen.pipeline import messages
from ln_imagegen.pipeline.prompt_collector import split_command
from ln_imagegen.pipeline.service import ImageGenService
from ln_imagegen.schemas.models import InvoiceStatus, RefundRecord, User, utcnow
from ln_imagegen.services.lnbits_client import LNbitsClient
from ln_imagegen.services.telegram_transport import TelegramTransport
from ln_imagegen.storage import (
    InMemoryInvoiceRepository,
    InMemorySessionStore,
    InMemoryUserDirectory,
    RedisInvoiceRepository,
    RedisSessionStore,
    RedisUserDirectory,
)

logger = structlog.get_logger().bind(component="server")

GENERATE_COMMAND = "/generate"
TELEGRAM_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


# =============================================================================
# SERVICE WIRING
# =============================================================================

def build_service(config: Settings) -> ImageGenService:
    """
    Production wiring: Redis when REDIS_URL is set, memory otherwise.

    Without Redis the user directory is loaded from USER_DIRECTORY_FILE.
    """
    if config.REDIS_URL:
        repository = RedisInvoiceRepository.from_url(config.REDIS_URL)
        sessions = RedisSessionStore.from_url(config.REDIS_URL)
        users = RedisUserDirectory.from_url(config.REDIS_URL)
    else:
        repository = InMemoryInvoiceRepository()
        sessions = InMemorySessionStore()
        if config.USER_DIRECTORY_FILE:
            users = InMemoryUserDirectory.from_file(config.USER_DIRECTORY_FILE)
        else:
            logger.warning("user_directory_empty", hint="set REDIS_URL or USER_DIRECTORY_FILE")
            users = InMemoryUserDirectory()

    return ImageGenService(
        repository=repository,
        sessions=sessions,
        users=users,
        payments=LNbitsClient.from_settings(config),
        chat=TelegramTransport.from_settings(config),
        config=config,
    )


async def _close(resource: Any) -> None:
    for name in ("aclose", "close"):
        closer = getattr(resource, name, None)
        if closer is not None:
            await closer()
            return


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    dispatcher_running: bool
    jobs_in_flight: int
    janitor: dict


class WebhookResponse(BaseModel):
    received: bool
    confirmed: bool


class InvoiceView(BaseModel):
    """Public view of an invoice; wallet keys are never exposed"""
    invoice_id: str
    status: InvoiceStatus
    amount: int
    memo: str
    payment_hash: str
    payment_request: str
    paid_internally: bool
    job_id: Optional[str] = None
    refund: Optional[RefundRecord] = None
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(
    config: Optional[Settings] = None,
    service_factory: Optional[Callable[[Settings], ImageGenService]] = None,
) -> FastAPI:
    config = config or settings
    service_factory = service_factory or build_service

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic"""
        logger.info("server_starting", version=__version__)
        service = service_factory(config)
        app.state.service = service
        app.state.started_at = utcnow()
        await service.start()

        yield

        logger.info("server_shutting_down")
        await service.stop(drain_timeout=config.JOB_DEADLINE_SECONDS)
        for resource in (service.payments, service.chat, service.repository, service.sessions, service.users):
            await _close(resource)

    app = FastAPI(
        title="LN Imagegen",
        description="Lightning-paid image generation for Telegram",
        version=__version__,
        lifespan=lifespan,
    )

    # =========================================================================
    # MIDDLEWARE
    # =========================================================================

    @app.middleware("http")
    async def add_request_context(request: Request, call_next):
        """Bind a request id for the request's log lines; add timing headers"""
        request_id = str(uuid4())[:8]
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        duration = (time.perf_counter() - start) * 1000
        response.headers["X-Response-Time-Ms"] = f"{duration:.2f}"
        response.headers["X-Request-ID"] = request_id
        return response

    # =========================================================================
    # HEALTH
    # =========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        service: ImageGenService = request.app.state.service
        health = await service.health_check()
        uptime = (utcnow() - request.app.state.started_at).total_seconds()
        return HealthResponse(
            status="healthy" if health["dispatcher"] else "degraded",
            version=__version__,
            uptime_seconds=uptime,
            dispatcher_running=health["dispatcher"],
            jobs_in_flight=health["jobs_in_flight"],
            janitor=health["janitor"],
        )

    # =========================================================================
    # LNBITS WEBHOOK
    # =========================================================================

    @app.post("/api/v1/webhook/lnbits", response_model=WebhookResponse)
    async def lnbits_webhook(request: Request):
        """LNbits calls this once an invoice created with our webhook is paid"""
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")

        payment_hash = body.get("payment_hash") if isinstance(body, dict) else None
        if not payment_hash:
            raise HTTPException(status_code=400, detail="Missing payment_hash")

        service: ImageGenService = request.app.state.service
        try:
            confirmed = await service.listener.on_webhook(payment_hash)
        except PaymentProviderError as e:
            logger.error("webhook_verification_error", payment_hash=payment_hash, error=str(e))
            raise HTTPException(status_code=502, detail="Payment verification failed")

        return WebhookResponse(received=True, confirmed=confirmed is not None)

    # =========================================================================
    # TELEGRAM UPDATES
    # =========================================================================

    @app.post("/api/v1/telegram/update")
    async def telegram_update(request: Request):
        """Thin command dispatch; always acknowledged so Telegram does not retry"""
        secret = request.headers.get(TELEGRAM_SECRET_HEADER, "")
        if not config.TELEGRAM_WEBHOOK_SECRET or not hmac.compare_digest(
            secret.encode(), config.TELEGRAM_WEBHOOK_SECRET.encode()
        ):
            logger.warning("telegram_update_rejected", reason="secret token mismatch")
            raise HTTPException(status_code=401, detail="Invalid secret token")

        try:
            update = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")

        message = update.get("message") if isinstance(update, dict) else None
        if not isinstance(message, dict) or not isinstance(message.get("text"), str) or not message["text"]:
            return {"ok": True, "handled": False}

        service: ImageGenService = request.app.state.service
        user = await _resolve_user(service, message)
        if user is None:
            return {"ok": True, "handled": False}
        text = message["text"]

        try:
            handled = await _dispatch(service, user, text)
        except UserInputError as e:
            logger.info("user_input_rejected", user_id=user.user_id, error=str(e))
            reply = messages.NO_WALLET if user.wallet is None else messages.EMPTY_PROMPT
            await _reply(service, user, reply)
            handled = True
        except PaymentSetupError as e:
            logger.error("payment_setup_failed", user_id=user.user_id, error=str(e))
            handled = True

        return {"ok": True, "handled": handled}

    # =========================================================================
    # INVOICES
    # =========================================================================

    @app.get("/api/v1/invoices/{invoice_id}", response_model=InvoiceView)
    async def get_invoice(invoice_id: str, request: Request):
        service: ImageGenService = request.app.state.service
        invoice = await service.repository.get(invoice_id)
        if invoice is None:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return InvoiceView.model_validate(invoice.model_dump())

    return app


# =============================================================================
# DISPATCH HELPERS
# =============================================================================

async def _resolve_user(service: ImageGenService, message: dict) -> Optional[User]:
    """Directory entry for the sender; None when the update names no sender or chat"""
    sender = message.get("from") or {}
    chat = message.get("chat") or {}
    chat_id = chat.get("id", sender.get("id"))
    if chat_id is None:
        return None
    user_id = str(sender.get("id", chat_id))
    user = await service.users.get(user_id)
    if user is not None:
        return user
    return User(user_id=user_id, chat_id=chat_id, username=sender.get("username"))


async def _dispatch(service: ImageGenService, user: User, text: str) -> bool:
    if text.startswith("/"):
        command, _ = split_command(text)
        if command == GENERATE_COMMAND:
            await service.collector.on_command(user, text)
            return True
        await service.collector.reset(user)
        return False

    invoice = await service.collector.on_text(user, text)
    return invoice is not None


async def _reply(service: ImageGenService, user: User, text: str) -> None:
    try:
        await service.chat.send_message(user.chat_id, text)
    except ChatTransportError as e:
        logger.warning("reply_failed", user_id=user.user_id, error=str(e))


app = create_app()


# =============================================================================
# MAIN
# =============================================================================

def main():
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "ln_imagegen.api.server:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
