# pipeline/delivery.py
# ============================================================================
# LN IMAGEGEN - DELIVERER
# ============================================================================
# For every generated artifact, independently:
#   provider download stream -> <artifact dir>/<artifact id>.png
#   -> reopen for reading -> send to the payer as a photo
#
# FAILURE HANDLING:
# - A failed artifact is logged and recorded; siblings still go out
# - Stream, write handle and read handle are closed on every exit path
# - The local copy is removed after a confirmed send; a failed removal is
#   logged and leaves the artifact delivered
# ============================================================================

import asyncio
from typing import Optional

import structlog

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import ChatTransportError, ProviderError
from ln_imagegen.schemas.models import DeliveryReport, GenerationArtifact, User
from ln_imagegen.services.generation_client import IGenerationProvider
from ln_imagegen.services.telegram_transport import IChatTransport
from ln_imagegen.storage.artifact_cache import ArtifactCache

logger = structlog.get_logger().bind(component="deliverer")


class Deliverer:

    def __init__(
        self,
        chat: IChatTransport,
        cache: Optional[ArtifactCache] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or settings
        self.chat = chat
        self.cache = cache or ArtifactCache(self.config.ARTIFACT_DIR)

    async def deliver(
        self,
        provider: IGenerationProvider,
        artifacts: list[GenerationArtifact],
        payer: User,
    ) -> DeliveryReport:
        report = DeliveryReport()
        for artifact in artifacts:
            log = logger.bind(artifact_id=artifact.artifact_id, user_id=payer.user_id)
            try:
                await self.deliver_one(provider, artifact, payer)
            except (ProviderError, ChatTransportError, OSError, ValueError) as e:
                log.error("artifact_delivery_failed", error=str(e), error_type=type(e).__name__)
                report.failed.append(artifact.artifact_id)
                continue
            log.info("artifact_delivered")
            report.delivered.append(artifact.artifact_id)

            if self.config.ARTIFACT_DELETE_AFTER_SEND:
                try:
                    await asyncio.to_thread(self.cache.remove, artifact.artifact_id)
                except OSError as e:
                    log.warning("artifact_cleanup_failed", error=str(e))
        return report

    async def deliver_one(
        self,
        provider: IGenerationProvider,
        artifact: GenerationArtifact,
        payer: User,
    ) -> None:
        """Download one artifact to the cache and send it; file I/O runs in worker threads"""
        path = self.cache.path_for(artifact.artifact_id)
        await asyncio.to_thread(self.cache.ensure)

        async with provider.download(artifact.artifact_id) as stream:
            out = await asyncio.to_thread(open, path, "wb")
            try:
                async for chunk in stream:
                    await asyncio.to_thread(out.write, chunk)
            finally:
                out.close()

        photo = await asyncio.to_thread(open, path, "rb")
        try:
            await self.chat.send_photo(payer.chat_id, photo)
        finally:
            photo.close()
