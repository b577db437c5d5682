"""
Cache Janitor
=============
Background task that removes old files from the artifact cache.

Delivered artifacts are deleted right after a confirmed send. Files left
behind by failed sends, or by a crash between download and send, are
swept here once they are older than the configured maximum age.

Features:
- Runs every JANITOR_INTERVAL_SECONDS (default 10 minutes)
- Removes PNGs older than ARTIFACT_MAX_AGE_SECONDS (default 1 hour)
- Can be disabled with JANITOR_ENABLED=false
"""

import asyncio
from typing import Optional

import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.storage.artifact_cache import ArtifactCache

logger = structlog.get_logger().bind(component="cache_janitor")


class CacheJanitor:

    def __init__(self, cache: ArtifactCache, config: Optional[Settings] = None):
        self.cache = cache
        self.config = config or settings
        self._task: Optional[asyncio.Task] = None
        self.last_removed = 0

    def sweep_once(self) -> int:
        removed = self.cache.sweep(self.config.ARTIFACT_MAX_AGE_SECONDS)
        self.last_removed = removed
        if removed:
            logger.info("artifacts_swept",
                        removed=removed,
                        directory=str(self.cache.directory))
        return removed

    async def run(self) -> None:
        logger.info("janitor_started",
                    interval=self.config.JANITOR_INTERVAL_SECONDS,
                    max_age=self.config.ARTIFACT_MAX_AGE_SECONDS)

        while True:
            try:
                await asyncio.to_thread(self.sweep_once)
            except OSError as e:
                logger.error("janitor_sweep_error", error=str(e))

            await asyncio.sleep(self.config.JANITOR_INTERVAL_SECONDS)

    def start(self) -> Optional[asyncio.Task]:
        if not self.config.JANITOR_ENABLED:
            logger.info("janitor_disabled")
            return None
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="cache-janitor")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("janitor_stopped")

    def stats(self) -> dict:
        return {
            "enabled": self.config.JANITOR_ENABLED,
            "running": self._task is not None and not self._task.done(),
            "interval_seconds": self.config.JANITOR_INTERVAL_SECONDS,
            "max_age_seconds": self.config.ARTIFACT_MAX_AGE_SECONDS,
            "last_removed": self.last_removed,
        }
