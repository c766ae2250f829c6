from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .errors import ChapterNotFound, ImageNotFound, TranslationUnavailable
from .models import ExtractionRecord, ExtractionStatus, ImageRecord, ImageStatus
from .ocr import OcrEngine
from .repository import PipelineRepository
from .storage import LocalWorkStorage
from .translation import TranslationClient

logger = logging.getLogger(__name__)

DEFAULT_TARGET_LANGUAGE = "pt-BR"


class ExtractionDriver:
    """
    Runs OCR on chapter images and translation on the resulting text blocks.

    The OCR engine and translation client are injected. Errors raised by either
    collaborator propagate to the caller, which decides whether they are fatal.
    """

    def __init__(
        self,
        repository: PipelineRepository,
        storage: LocalWorkStorage,
        ocr_engine: OcrEngine,
        translator: Optional[TranslationClient] = None,
    ):
        self.repo = repository
        self.storage = storage
        self.ocr_engine = ocr_engine
        self.translator = translator

    async def extract_text(self, image_id: int) -> List[ExtractionRecord]:
        image = self.repo.get_image(image_id)
        if not image:
            raise ImageNotFound(image_id)

        local_path = self._local_file(image)
        if local_path is not None:
            blocks = await self.ocr_engine.detect_text(content=local_path.read_bytes(), filename=image.filename)
        else:
            blocks = await self.ocr_engine.detect_text(uri=image.url)

        created = self.repo.create_extractions(image.id, blocks, status=ExtractionStatus.DONE)
        self.repo.update_image(image.id, ocr_data=[asdict(b) for b in blocks])
        logger.info("Image %s: stored %d extraction(s)", image.id, len(created))
        return created

    async def extract_chapter(self, chapter_id: int) -> List[Dict[str, Any]]:
        """
        Extract every image of a chapter in position order. Per-image failures are
        reported in the result list instead of aborting the loop.
        """
        if not self.repo.get_chapter(chapter_id):
            raise ChapterNotFound(chapter_id)
        results: List[Dict[str, Any]] = []
        for image in self.repo.list_images_for_chapter(chapter_id):
            try:
                created = await self.extract_text(image.id)
            except Exception as exc:  # noqa: BLE001
                logger.error("Chapter %s: extraction failed for image %s: %s", chapter_id, image.id, exc)
                results.append({"image_id": image.id, "error": str(exc) or type(exc).__name__})
                continue
            results.append({"image_id": image.id, "extracted": len(created)})
        return results

    async def translate_extractions(
        self,
        extraction_ids: Iterable[int],
        target_language: str = DEFAULT_TARGET_LANGUAGE,
    ) -> List[ExtractionRecord]:
        if self.translator is None:
            raise TranslationUnavailable("No translation client configured")
        extractions = self.repo.get_extractions(extraction_ids)
        if not extractions:
            return []

        texts = [e.text or "" for e in extractions]
        try:
            translations = await self.translator.translate(texts, target_language)
            if len(translations) != len(extractions):
                raise RuntimeError(f"Expected {len(extractions)} translation(s), got {len(translations)}")
        except Exception:
            for extraction in extractions:
                self.repo.update_extraction_translation(extraction.id, translate_status=ExtractionStatus.FAILED)
            raise

        for extraction, translated in zip(extractions, translations):
            self.repo.update_extraction_translation(
                extraction.id,
                translated_text=translated,
                translated_lang=target_language,
                translate_status=ExtractionStatus.DONE,
            )
        return self.repo.get_extractions([e.id for e in extractions])

    async def translate_image(
        self,
        image_id: int,
        target_language: str = DEFAULT_TARGET_LANGUAGE,
    ) -> List[ExtractionRecord]:
        if not self.repo.get_image(image_id):
            raise ImageNotFound(image_id)
        extractions = self.repo.list_extractions_for_images([image_id])
        if not extractions:
            raise ValueError(f"Image {image_id} has no extractions to translate")
        return await self.translate_extractions([e.id for e in extractions], target_language)

    def _local_file(self, image: ImageRecord) -> Optional[Path]:
        if image.status != ImageStatus.DOWNLOADED or not image.filename:
            return None
        chapter = self.repo.get_chapter(image.chapter_id)
        if not chapter:
            return None
        work = self.repo.get_work(chapter.work_id)
        if not work:
            return None
        path = self.storage.image_path(work.slug, chapter.number, chapter.id, image.filename)
        return path if path.is_file() else None
