"""
User Directory
==============
Maps chat users to their LNbits wallets. Wallet provisioning lives in the
wallet ledger; this service only looks users up.

Two ways to fill the directory in a deployment:
- Redis: the wallet ledger writes ``user:{user_id}`` JSON records to the
  shared Redis instance
- A JSON file (USER_DIRECTORY_FILE) holding a list of user records, loaded
  into memory at startup
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import redis.asyncio as redis
import structlog

from ln_imagegen.schemas.models import User

logger = structlog.get_logger().bind(component="user_directory")


class IUserDirectory(ABC):

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def register(self, user: User) -> User:
        pass


class InMemoryUserDirectory(IUserDirectory):

    def __init__(self, users: Optional[list[User]] = None):
        self._users: dict[str, User] = {u.user_id: u for u in users or []}
        self._lock = asyncio.Lock()

    @classmethod
    def from_file(cls, path: str) -> "InMemoryUserDirectory":
        """Load a JSON list of user records"""
        records = json.loads(Path(path).read_text(encoding="utf-8"))
        users = [User.model_validate(record) for record in records]
        logger.info("user_directory_loaded", path=path, users=len(users))
        return cls(users)

    async def get(self, user_id: str) -> Optional[User]:
        async with self._lock:
            return self._users.get(user_id)

    async def register(self, user: User) -> User:
        async with self._lock:
            self._users[user.user_id] = user
            return user


class RedisUserDirectory(IUserDirectory):
    """Users shared with the wallet ledger through Redis"""

    KEY_PREFIX = "user:"

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisUserDirectory":
        return cls(redis.from_url(url))

    async def get(self, user_id: str) -> Optional[User]:
        raw = await self._redis.get(f"{self.KEY_PREFIX}{user_id}")
        if not raw:
            return None
        return User.model_validate_json(raw)

    async def register(self, user: User) -> User:
        await self._redis.set(f"{self.KEY_PREFIX}{user.user_id}", user.model_dump_json())
        return user

    async def close(self):
        await self._redis.aclose()
