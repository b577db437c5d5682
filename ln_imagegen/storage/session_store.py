"""
Prompt Session Store
====================
Per-user prompt-capture state with a time-to-live. An expired session reads
back as IDLE, so a late message can never be taken as the pending prompt.
"""

import asyncio
from abc import ABC, abstractmethod

import redis.asyncio as redis
import structlog

from ln_imagegen.schemas.models import PromptSession, SessionState, utcnow

logger = structlog.get_logger().bind(component="session_store")


class ISessionStore(ABC):
    """Session storage interface"""

    @abstractmethod
    async def get(self, user_id: str) -> PromptSession:
        """Current session, IDLE when missing or expired"""
        pass

    @abstractmethod
    async def set(self, session: PromptSession, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def clear(self, user_id: str) -> None:
        pass


class InMemorySessionStore(ISessionStore):
    """Dict-backed store; expiry is checked on read"""

    def __init__(self):
        self._sessions: dict[str, PromptSession] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: str) -> PromptSession:
        async with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                return PromptSession(user_id=user_id)
            if session.expires_at and utcnow() >= session.expires_at:
                del self._sessions[user_id]
                logger.debug("session_expired", user_id=user_id)
                return PromptSession(user_id=user_id)
            return session

    async def set(self, session: PromptSession, ttl_seconds: int) -> None:
        async with self._lock:
            if session.state == SessionState.IDLE:
                self._sessions.pop(session.user_id, None)
            else:
                self._sessions[session.user_id] = session

    async def clear(self, user_id: str) -> None:
        async with self._lock:
            self._sessions.pop(user_id, None)


class RedisSessionStore(ISessionStore):
    """Redis-backed store; expiry is enforced with SETEX"""

    KEY_PREFIX = "prompt_session:"

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisSessionStore":
        return cls(redis.from_url(url))

    async def get(self, user_id: str) -> PromptSession:
        raw = await self._redis.get(f"{self.KEY_PREFIX}{user_id}")
        if not raw:
            return PromptSession(user_id=user_id)
        return PromptSession.model_validate_json(raw)

    async def set(self, session: PromptSession, ttl_seconds: int) -> None:
        key = f"{self.KEY_PREFIX}{session.user_id}"
        if session.state == SessionState.IDLE:
            await self._redis.delete(key)
            return
        await self._redis.setex(key, ttl_seconds, session.model_dump_json())

    async def clear(self, user_id: str) -> None:
        await self._redis.delete(f"{self.KEY_PREFIX}{user_id}")

    async def close(self):
        await self._redis.aclose()
