from __future__ import annotations

import logging
from typing import Optional, Set

from .downloader import BatchDownloader
from .extraction import ExtractionDriver
from .models import ImageStatus, PipelineStatus
from .repository import PipelineRepository

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """
    Drives a chapter through idle -> downloading -> extracting -> done, or to
    error when the download stage leaves images behind or something unexpected
    breaks. The orchestrator keeps no chapter state of its own beyond the set of
    chapters currently running in this process; the repository holds the status.

    `run` never raises: it is meant to be handed off to a queue consumer with
    nobody waiting on the result.
    """

    def __init__(
        self,
        repository: PipelineRepository,
        downloader: BatchDownloader,
        extraction_driver: ExtractionDriver,
        retry_count: int = 2,
        concurrency: int = 3,
    ):
        self.repo = repository
        self.downloader = downloader
        self.extraction_driver = extraction_driver
        self.retry_count = retry_count
        self.concurrency = concurrency
        self._active: Set[int] = set()

    def is_running(self, chapter_id: int) -> bool:
        return chapter_id in self._active

    async def run(self, chapter_id: int) -> Optional[PipelineStatus]:
        """Run one pipeline pass and return the final status, or None when nothing ran."""
        label = f"[pipeline chapter={chapter_id}]"
        if chapter_id in self._active:
            logger.warning("%s run already in progress, skipping", label)
            return None

        self._active.add(chapter_id)
        chapter = None
        try:
            chapter = self.repo.get_chapter(chapter_id)
            if not chapter:
                logger.error("%s chapter not found", label)
                return None
            return await self._run_stages(chapter_id, label)
        except Exception:  # noqa: BLE001
            logger.exception("%s pipeline error", label)
            if chapter is not None:
                try:
                    self.repo.update_chapter_status(chapter_id, PipelineStatus.ERROR)
                except Exception:  # noqa: BLE001
                    logger.exception("%s could not persist error status", label)
            return PipelineStatus.ERROR
        finally:
            self._active.discard(chapter_id)

    async def _run_stages(self, chapter_id: int, label: str) -> PipelineStatus:
        logger.info("%s starting download", label)
        self.repo.update_chapter_status(chapter_id, PipelineStatus.DOWNLOADING)
        await self.downloader.download_images(
            chapter_id, retry_count=self.retry_count, concurrency=self.concurrency
        )

        if not self.downloader.all_downloaded(chapter_id):
            failed = self.repo.count_images(chapter_id, status=ImageStatus.FAILED)
            logger.warning("%s download incomplete, %d image(s) failed", label, failed)
            self.repo.update_chapter_status(chapter_id, PipelineStatus.ERROR)
            return PipelineStatus.ERROR
        logger.info("%s all images downloaded", label)

        self.repo.update_chapter_status(chapter_id, PipelineStatus.EXTRACTING)
        images = self.repo.list_images_for_chapter(chapter_id, status=ImageStatus.DOWNLOADED)
        extracted = 0
        for image in images:
            try:
                await self.extraction_driver.extract_text(image.id)
            except Exception as exc:  # noqa: BLE001
                logger.error("%s extraction failed for image %s: %s", label, image.id, exc)
                continue
            extracted += 1
            logger.info("%s extracted %d/%d (image %s)", label, extracted, len(images), image.id)

        self.repo.update_chapter_status(chapter_id, PipelineStatus.DONE)
        logger.info("%s pipeline complete, %d/%d extracted", label, extracted, len(images))
        return PipelineStatus.DONE
