"""
Prompt Collector
================
Two-step prompt capture for ``/generate``.

``/generate <prompt>`` goes straight to the invoice gate. A bare
``/generate`` stores an AWAITING_PROMPT session with a TTL and asks for the
prompt with a forced reply; the user's next text message is the prompt.
The session is cleared before any payment logic runs, so a captured prompt
is consumed exactly once.
"""

from datetime import timedelta
from typing import Optional

import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import UserInputError
from ln_imagegen.pipeline import messages
from ln_imagegen.pipeline.invoice_gate import InvoiceGate
from ln_imagegen.schemas.models import Invoice, PromptSession, SessionState, User, utcnow
from ln_imagegen.services.telegram_transport import IChatTransport
from ln_imagegen.storage.session_store import ISessionStore

logger = structlog.get_logger().bind(component="prompt_collector")


def split_command(text: str) -> tuple[str, str]:
    """'/generate@bot a red fox' -> ('/generate', 'a red fox')"""
    head, _, rest = text.strip().partition(" ")
    return head.split("@", 1)[0].lower(), rest.strip()


class PromptCollector:

    def __init__(
        self,
        sessions: ISessionStore,
        chat: IChatTransport,
        gate: InvoiceGate,
        config: Optional[Settings] = None,
    ):
        self.sessions = sessions
        self.chat = chat
        self.gate = gate
        self.config = config or settings

    @staticmethod
    def _require_wallet(user: User) -> None:
        if user.wallet is None:
            raise UserInputError(f"User {user.user_id} has no wallet")

    async def on_command(self, user: User, text: str) -> Optional[Invoice]:
        """
        Handle ``/generate``.

        Returns the created invoice when the prompt was inline, otherwise
        None after asking the user for the prompt.
        """
        self._require_wallet(user)
        _, prompt = split_command(text)
        if prompt:
            await self.sessions.clear(user.user_id)
            return await self.gate.request_generation(user, prompt)

        ttl = self.config.SESSION_TTL_SECONDS
        await self.sessions.set(
            PromptSession(
                user_id=user.user_id,
                state=SessionState.AWAITING_PROMPT,
                expires_at=utcnow() + timedelta(seconds=ttl),
            ),
            ttl_seconds=ttl,
        )
        await self.chat.send_message(user.chat_id, messages.ENTER_PROMPT, force_reply=True)
        logger.info("prompt_requested", user_id=user.user_id, ttl_seconds=ttl)
        return None

    async def on_text(self, user: User, text: str) -> Optional[Invoice]:
        """
        Handle a plain text message.

        Returns None without consuming the message when no prompt is awaited.
        """
        session = await self.sessions.get(user.user_id)
        if not session.is_awaiting():
            return None

        await self.sessions.clear(user.user_id)
        prompt = text.strip()
        if not prompt:
            raise UserInputError("Prompt is empty")
        self._require_wallet(user)
        logger.info("prompt_captured", user_id=user.user_id, prompt_length=len(prompt))
        return await self.gate.request_generation(user, prompt)

    async def reset(self, user: User) -> None:
        await self.sessions.clear(user.user_id)
