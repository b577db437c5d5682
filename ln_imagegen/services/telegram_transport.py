# services/telegram_transport.py
# ============================================================================
# LN IMAGEGEN - CHAT TRANSPORT
# ============================================================================
# Outbound Telegram Bot API calls:
# - sendMessage       (optionally with a force_reply keyboard)
# - sendPhoto         multipart upload from an open binary file
# - editMessageText   rewrite a message already shown to the user
# ============================================================================

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Optional

import httpx
import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import ChatTransportError
from ln_imagegen.schemas.models import ChatMessageRef

logger = structlog.get_logger().bind(component="telegram_transport")


class IChatTransport(ABC):
    """Chat transport interface"""

    @abstractmethod
    async def send_message(self, chat_id: int, text: str, force_reply: bool = False) -> ChatMessageRef:
        pass

    @abstractmethod
    async def send_photo(self, chat_id: int, photo: BinaryIO, caption: Optional[str] = None) -> ChatMessageRef:
        pass

    @abstractmethod
    async def edit_message(self, ref: ChatMessageRef, text: str) -> None:
        pass


class TelegramTransport(IChatTransport):
    """Bot API client over httpx"""

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=f"{api_url.rstrip('/')}/bot{bot_token}",
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "TelegramTransport":
        config = config or settings
        return cls(bot_token=config.TELEGRAM_BOT_TOKEN, api_url=config.TELEGRAM_API_URL)

    async def _call(self, method: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.post(f"/{method}", **kwargs)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ChatTransportError(f"{method} failed: {e}") from e

        if not body.get("ok"):
            raise ChatTransportError(
                f"{method} refused: {body.get('description', response.status_code)}"
            )
        return body.get("result")

    @staticmethod
    def _ref(chat_id: int, result: Any) -> ChatMessageRef:
        return ChatMessageRef(chat_id=chat_id, message_id=result["message_id"])

    async def send_message(self, chat_id: int, text: str, force_reply: bool = False) -> ChatMessageRef:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if force_reply:
            payload["reply_markup"] = {"force_reply": True}
        result = await self._call("sendMessage", json=payload)
        return self._ref(chat_id, result)

    async def send_photo(self, chat_id: int, photo: BinaryIO, caption: Optional[str] = None) -> ChatMessageRef:
        data = {"chat_id": str(chat_id)}
        if caption:
            data["caption"] = caption
        name = getattr(photo, "name", "photo.png")
        result = await self._call(
            "sendPhoto",
            data=data,
            files={"photo": (str(name).rsplit("/", 1)[-1], photo, "image/png")},
        )
        logger.debug("photo_sent", chat_id=chat_id)
        return self._ref(chat_id, result)

    async def edit_message(self, ref: ChatMessageRef, text: str) -> None:
        await self._call(
            "editMessageText",
            json={"chat_id": ref.chat_id, "message_id": ref.message_id, "text": text},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
