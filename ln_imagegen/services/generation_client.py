# services/generation_client.py
# ============================================================================
# LN IMAGEGEN - GENERATION PROVIDER CLIENT
# ============================================================================
# Talks to the DALL-E labs task API:
# - POST /tasks                        submit a text2im task
# - GET  /tasks/{id}                   task status and generations
# - GET  /generations/{id}/download    image bytes
#
# FAILURE HANDLING:
# - Every transport or HTTP status failure becomes ProviderError
# - So does any 2xx body that does not parse as a task object
# - Cancellation (job deadline) is never caught here
# ============================================================================

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import ProviderError
from ln_imagegen.schemas.models import Job

logger = structlog.get_logger().bind(component="generation_client")


class IGenerationProvider(ABC):
    """Generation provider interface"""

    @abstractmethod
    async def submit(self, prompt: str) -> Job:
        pass

    @abstractmethod
    async def get_status(self, job_id: str) -> Job:
        pass

    @abstractmethod
    def download(self, artifact_id: str) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Byte stream of one artifact; released when the context exits"""
        pass

    @abstractmethod
    async def aclose(self) -> None:
        pass


class GenerationClient(IGenerationProvider):
    """httpx client for the labs task API, authenticated with a bearer token"""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        batch_size: int = 4,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ProviderError("Generation API key is not configured")
        self.batch_size = batch_size
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "GenerationClient":
        config = config or settings
        return cls(
            api_key=config.GENERATE_API_KEY,
            base_url=config.GENERATE_API_URL,
            batch_size=config.GENERATE_BATCH_SIZE,
            timeout_seconds=config.GENERATE_HTTP_TIMEOUT,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{method} {url} returned {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"{method} {url} failed: {e}") from e

        if not isinstance(data, dict):
            raise ProviderError(f"{method} {url} returned a non-object body")
        return data

    @staticmethod
    def _parse_job(data: dict, method: str, url: str) -> Job:
        try:
            return Job.from_provider(data)
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise ProviderError(f"{method} {url} returned an unreadable task: {e!r}") from e

    async def submit(self, prompt: str) -> Job:
        """Create a text2im task for the prompt"""
        data = await self._request(
            "POST",
            "/tasks",
            json={
                "task_type": "text2im",
                "prompt": {"caption": prompt, "batch_size": self.batch_size},
            },
        )
        job = self._parse_job(data, "POST", "/tasks")
        logger.info("task_submitted", job_id=job.job_id, status=job.status.value)
        return job

    async def get_status(self, job_id: str) -> Job:
        url = f"/tasks/{job_id}"
        data = await self._request("GET", url)
        return self._parse_job(data, "GET", url)

    @asynccontextmanager
    async def download(self, artifact_id: str) -> AsyncIterator[AsyncIterator[bytes]]:
        url = f"/generations/{artifact_id}/download"
        try:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()
                yield response.aiter_bytes()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"GET {url} returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"GET {url} failed: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
