from __future__ import annotations

from typing import Iterable, List, Tuple

from .errors import ChapterNotFound, WorkNotFound
from .models import ChapterProgress, ChapterRecord, ImageRecord, ImageStatus, ImageStatusCounts
from .repository import PipelineRepository


def count_statuses(images: Iterable[ImageRecord]) -> ImageStatusCounts:
    counts = ImageStatusCounts()
    for image in images:
        counts.total += 1
        if image.status == ImageStatus.DOWNLOADED:
            counts.downloaded += 1
        elif image.status == ImageStatus.FAILED:
            counts.failed += 1
        elif image.status == ImageStatus.PENDING:
            counts.pending += 1
    return counts


def _chapter_sort_key(chapter: ChapterRecord) -> Tuple[int, int, int]:
    # Numbered chapters first (highest number first), then by id, newest first.
    try:
        number = int(str(chapter.number).strip()) if chapter.number is not None else None
    except ValueError:
        number = None
    if number is None:
        return (1, 0, -chapter.id)
    return (0, -number, -chapter.id)


class StatusAggregator:
    """Read-only progress queries for pollers. Never mutates pipeline state."""

    def __init__(self, repository: PipelineRepository):
        self.repo = repository

    def chapter_status(self, chapter_id: int) -> ImageStatusCounts:
        if not self.repo.get_chapter(chapter_id):
            raise ChapterNotFound(chapter_id)
        return count_statuses(self.repo.list_images_for_chapter(chapter_id))

    def chapter_progress(self, chapter: ChapterRecord) -> ChapterProgress:
        images = self.repo.list_images_for_chapter(chapter.id)
        progress = ChapterProgress(chapter=chapter, counts=count_statuses(images))
        if not images:
            return progress

        extractions = self.repo.list_extractions_for_images([i.id for i in images])
        extracted = {e.image_id for e in extractions}
        translated = {e.image_id for e in extractions if e.translated_text}
        total = len(images)
        progress.images_with_extractions = len(extracted)
        progress.all_extracted = len(extracted) == total
        progress.images_with_translations = len(translated)
        progress.all_translated = len(translated) == total
        progress.total_extractions = len(extractions)
        return progress

    def work_progress(self, work_id: int) -> List[ChapterProgress]:
        if not self.repo.get_work(work_id):
            raise WorkNotFound(work_id)
        chapters = sorted(self.repo.list_chapters_for_work(work_id), key=_chapter_sort_key)
        return [self.chapter_progress(chapter) for chapter in chapters]
