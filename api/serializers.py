from __future__ import annotations

from typing import Any, Dict

from chapter_reader.pipeline import (
    ChapterProgress,
    ChapterRecord,
    ExtractionRecord,
    ImageRecord,
    ImageStatusCounts,
    WorkRecord,
)


def work_dict(work: WorkRecord) -> Dict[str, Any]:
    return {"id": work.id, "title": work.title, "slug": work.slug, "created_at": work.created_at}


def chapter_dict(chapter: ChapterRecord) -> Dict[str, Any]:
    return {
        "id": chapter.id,
        "work_id": chapter.work_id,
        "number": chapter.number,
        "source_url": chapter.source_url,
        "pipeline_status": chapter.pipeline_status,
        "is_read": chapter.is_read,
        "created_at": chapter.created_at,
    }


def image_dict(image: ImageRecord) -> Dict[str, Any]:
    return {
        "id": image.id,
        "chapter_id": image.chapter_id,
        "position": image.position,
        "url": image.url,
        "filename": image.filename,
        "status": image.status,
    }


def extraction_dict(extraction: ExtractionRecord) -> Dict[str, Any]:
    return {
        "id": extraction.id,
        "image_id": extraction.image_id,
        "text": extraction.text,
        "bbox": extraction.bbox,
        "confidence": extraction.confidence,
        "language": extraction.language,
        "status": extraction.status,
        "translated_text": extraction.translated_text,
        "translated_lang": extraction.translated_lang,
        "translate_status": extraction.translate_status,
    }


def counts_dict(counts: ImageStatusCounts) -> Dict[str, int]:
    return {
        "total": counts.total,
        "downloaded": counts.downloaded,
        "pending": counts.pending,
        "failed": counts.failed,
    }


def progress_dict(progress: ChapterProgress) -> Dict[str, Any]:
    chapter = progress.chapter
    return {
        "id": chapter.id,
        "number": chapter.number,
        "source_url": chapter.source_url,
        "pipeline_status": chapter.pipeline_status,
        "is_read": chapter.is_read,
        "status": counts_dict(progress.counts),
        "extractions": {
            "images_with_extractions": progress.images_with_extractions,
            "all_extracted": progress.all_extracted,
            "total_extractions": progress.total_extractions,
        },
        "translations": {
            "images_with_translations": progress.images_with_translations,
            "all_translated": progress.all_translated,
        },
    }
