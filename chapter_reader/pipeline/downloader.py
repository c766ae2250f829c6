from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import httpx

from .errors import ChapterNotFound, ImageNotFound, WorkNotFound
from .fetcher import ImageFetcher, image_filename
from .limiter import ConcurrencyLimiter
from .models import ChapterRecord, ImageRecord, ImageStatus, WorkRecord
from .repository import PipelineRepository
from .storage import LocalWorkStorage

logger = logging.getLogger(__name__)


class BatchDownloader:
    """
    Downloads the images of a chapter into its storage folder.

    Every eligible image is fanned out through a ConcurrencyLimiter and tried up
    to `retry_count + 1` times back to back. The terminal outcome of each image
    (`downloaded` or `failed`) is written to the repository; fetch errors are
    logged and never propagate out of a batch.
    """

    def __init__(
        self,
        repository: PipelineRepository,
        storage: LocalWorkStorage,
        fetcher: Optional[ImageFetcher] = None,
    ):
        self.repo = repository
        self.storage = storage
        self.fetcher = fetcher or ImageFetcher()

    async def download_images(self, chapter_id: int, *, retry_count: int = 1, concurrency: int = 3) -> int:
        """
        Fetch every image of the chapter that is not yet downloaded and wait for
        the whole batch to settle. Returns the number of images attempted.
        """
        chapter, work = self._resolve_chapter(chapter_id)
        chapter_dir = self.storage.ensure_chapter_dir(work.slug, chapter.number, chapter.id)
        images = self.repo.list_images_for_chapter(chapter.id)
        targets = [img for img in images if img.status != ImageStatus.DOWNLOADED]
        await self._run_batch(targets, chapter_dir, retry_count, concurrency)
        return len(targets)

    async def retry_failed_images(self, chapter_id: int, *, retry_count: int = 1, concurrency: int = 3) -> int:
        """Re-run the download attempts for images currently marked failed. Returns how many were retried."""
        chapter, work = self._resolve_chapter(chapter_id)
        failed = self.repo.list_images_for_chapter(chapter.id, status=ImageStatus.FAILED)
        if not failed:
            return 0
        chapter_dir = self.storage.ensure_chapter_dir(work.slug, chapter.number, chapter.id)
        await self._run_batch(failed, chapter_dir, retry_count, concurrency)
        return len(failed)

    async def download_single_image(self, image_id: int, *, retry_count: int = 1) -> ImageRecord:
        image = self.repo.get_image(image_id)
        if not image:
            raise ImageNotFound(image_id)
        chapter, work = self._resolve_chapter(image.chapter_id)
        chapter_dir = self.storage.ensure_chapter_dir(work.slug, chapter.number, chapter.id)
        async with self.fetcher.client() as client:
            await self._download_with_retry(client, image, chapter_dir, retry_count)
        updated = self.repo.get_image(image_id)
        if not updated:
            raise ImageNotFound(image_id)
        return updated

    def all_downloaded(self, chapter_id: int) -> bool:
        total = self.repo.count_images(chapter_id)
        if total == 0:
            return False
        return self.repo.count_images(chapter_id, status=ImageStatus.DOWNLOADED) == total

    def _resolve_chapter(self, chapter_id: int) -> Tuple[ChapterRecord, WorkRecord]:
        chapter = self.repo.get_chapter(chapter_id)
        if not chapter:
            raise ChapterNotFound(chapter_id)
        work = self.repo.get_work(chapter.work_id)
        if not work:
            raise WorkNotFound(chapter.work_id)
        return chapter, work

    async def _run_batch(
        self,
        images: List[ImageRecord],
        chapter_dir: Path,
        retry_count: int,
        concurrency: int,
    ) -> None:
        if not images:
            return
        limiter = ConcurrencyLimiter(concurrency)
        async with self.fetcher.client() as client:
            tasks = [
                limiter.schedule(lambda img=img: self._download_with_retry(client, img, chapter_dir, retry_count))
                for img in images
            ]
            results = await asyncio.gather(*tasks, return_exceptions=True)
        for image, result in zip(images, results):
            if isinstance(result, Exception):
                logger.error("Unexpected error downloading image %s (%s): %s", image.id, image.url, result)
                self.repo.update_image(image.id, status=ImageStatus.FAILED)

    async def _download_with_retry(
        self,
        client: httpx.AsyncClient,
        image: ImageRecord,
        chapter_dir: Path,
        retry_count: int,
    ) -> bool:
        filename = image_filename(image)
        destination = chapter_dir / filename
        max_attempts = max(retry_count, 0) + 1
        for attempt in range(1, max_attempts + 1):
            try:
                await self.fetcher.fetch(image.url, destination, client=client)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to download %s attempt %d/%d: %s", image.url, attempt, max_attempts, exc)
                continue
            self.repo.update_image(image.id, status=ImageStatus.DOWNLOADED, filename=filename)
            return True

        logger.error("Giving up on %s after %d attempt(s)", image.url, max_attempts)
        self.repo.update_image(image.id, status=ImageStatus.FAILED)
        return False
