from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel

from chapter_reader.pipeline import (
    ChapterNotFound,
    ChapterRecord,
    ImageRecord,
    NotFoundError,
    QueueFull,
    TranslationUnavailable,
    WorkRecord,
)

from api import dependencies as deps
from api.serializers import chapter_dict, counts_dict, extraction_dict, image_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/works/{work_id}/chapters", tags=["chapters"])

INTERACTIVE_RETRY_COUNT = 1
INTERACTIVE_CONCURRENCY = 3


class ChapterCreate(BaseModel):
    link: str
    number: Optional[str] = None
    image_urls: List[str] = []


class ReadFlag(BaseModel):
    is_read: bool = True


class TranslateRequest(BaseModel):
    target: Optional[str] = None


def _load_chapter(work_id: int, chapter_id: int) -> Tuple[WorkRecord, ChapterRecord]:
    repo = deps.get_repo()
    chapter = repo.get_chapter(chapter_id)
    if not chapter or chapter.work_id != work_id:
        raise HTTPException(status_code=404, detail=f"Chapter not found: {chapter_id}")
    work = repo.get_work(work_id)
    if not work:
        raise HTTPException(status_code=404, detail=f"Work not found: {work_id}")
    return work, chapter


def _load_image(work_id: int, chapter_id: int, image_id: int) -> Tuple[WorkRecord, ChapterRecord, ImageRecord]:
    work, chapter = _load_chapter(work_id, chapter_id)
    image = deps.get_repo().get_image(image_id)
    if not image or image.chapter_id != chapter.id:
        raise HTTPException(status_code=404, detail=f"Image not found: {image_id}")
    return work, chapter, image


@router.post("", status_code=201)
def create_chapter(work_id: int, body: ChapterCreate):
    if not body.link.strip():
        raise HTTPException(status_code=400, detail="link is required")
    repo = deps.get_repo()
    work = repo.get_work(work_id)
    if not work:
        raise HTTPException(status_code=404, detail=f"Work not found: {work_id}")
    chapter = repo.create_chapter(work.id, source_url=body.link, number=body.number or None)
    deps.get_storage().ensure_chapter_dir(work.slug, chapter.number, chapter.id)
    images = repo.create_images(chapter.id, body.image_urls)
    return {"chapter": chapter_dict(chapter), "images": [image_dict(i) for i in images]}


@router.get("/{chapter_id}/status")
def chapter_status(work_id: int, chapter_id: int):
    _load_chapter(work_id, chapter_id)
    try:
        counts = deps.get_status_aggregator().chapter_status(chapter_id)
    except ChapterNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return counts_dict(counts)


@router.post("/{chapter_id}/download")
async def download_chapter(work_id: int, chapter_id: int):
    _load_chapter(work_id, chapter_id)
    try:
        attempted = await deps.get_downloader().download_images(
            chapter_id, retry_count=INTERACTIVE_RETRY_COUNT, concurrency=INTERACTIVE_CONCURRENCY
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"ok": True, "attempted": attempted}


@router.post("/{chapter_id}/retry")
async def retry_failed(work_id: int, chapter_id: int):
    _load_chapter(work_id, chapter_id)
    try:
        retried = await deps.get_downloader().retry_failed_images(
            chapter_id, retry_count=INTERACTIVE_RETRY_COUNT, concurrency=INTERACTIVE_CONCURRENCY
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"ok": True, "retried": retried}


@router.post("/{chapter_id}/run", status_code=202)
async def run_pipeline(work_id: int, chapter_id: int):
    _load_chapter(work_id, chapter_id)
    try:
        queued = deps.enqueue_pipeline_run(chapter_id)
    except QueueFull as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return {"ok": True, "queued": queued}


@router.post("/{chapter_id}/extract")
async def extract_chapter(work_id: int, chapter_id: int):
    _load_chapter(work_id, chapter_id)
    try:
        results = await deps.get_extraction_driver().extract_chapter(chapter_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"ok": True, "results": results}


@router.post("/{chapter_id}/read")
def mark_read(work_id: int, chapter_id: int, body: ReadFlag):
    _load_chapter(work_id, chapter_id)
    deps.get_repo().set_chapter_read(chapter_id, body.is_read)
    return {"ok": True, "is_read": body.is_read}


@router.delete("/{chapter_id}")
def delete_chapter(work_id: int, chapter_id: int):
    work, chapter = _load_chapter(work_id, chapter_id)
    deps.get_storage().delete_chapter_dir(work.slug, chapter.number, chapter.id)
    deps.get_repo().delete_chapter(chapter.id)
    return {"ok": True}


@router.post("/{chapter_id}/images/{image_id}/retry")
async def retry_image(work_id: int, chapter_id: int, image_id: int):
    _load_image(work_id, chapter_id, image_id)
    try:
        image = await deps.get_downloader().download_single_image(image_id, retry_count=INTERACTIVE_RETRY_COUNT)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"ok": True, "image": image_dict(image)}


@router.post("/{chapter_id}/images/{image_id}/extract")
async def extract_image(work_id: int, chapter_id: int, image_id: int):
    _load_image(work_id, chapter_id, image_id)
    try:
        extractions = await deps.get_extraction_driver().extract_text(image_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.error("extract failed for image %s: %s", image_id, exc)
        raise HTTPException(status_code=502, detail=f"extract_failed: {exc}")
    return {"ok": True, "extractions": [extraction_dict(e) for e in extractions]}


@router.post("/{chapter_id}/images/{image_id}/translate")
async def translate_image(work_id: int, chapter_id: int, image_id: int, body: Optional[TranslateRequest] = None):
    _load_image(work_id, chapter_id, image_id)
    target = (body.target if body and body.target else None) or deps.default_target_language()
    if not deps.get_repo().list_extractions_for_images([image_id]):
        raise HTTPException(status_code=400, detail="no_extractions")
    try:
        translated = await deps.get_extraction_driver().translate_image(image_id, target)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except TranslationUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.error("translate failed for image %s: %s", image_id, exc)
        raise HTTPException(status_code=502, detail=f"translate_failed: {exc}")
    return {"ok": True, "translated": [extraction_dict(e) for e in translated]}


@router.get("/{chapter_id}/images/{image_id}/extractions")
def list_extractions(work_id: int, chapter_id: int, image_id: int):
    _load_image(work_id, chapter_id, image_id)
    extractions = deps.get_repo().list_extractions_for_images([image_id])
    return {"ok": True, "extractions": [extraction_dict(e) for e in extractions]}


@router.get("/{chapter_id}/images/{image_id}/file")
def get_image_file(work_id: int, chapter_id: int, image_id: int):
    work, chapter, image = _load_image(work_id, chapter_id, image_id)
    storage = deps.get_storage()
    if not storage.image_exists(work.slug, chapter.number, chapter.id, image.filename):
        raise HTTPException(status_code=404, detail="file_not_found")
    return FileResponse(storage.image_path(work.slug, chapter.number, chapter.id, image.filename))


@router.delete("/{chapter_id}/images/{image_id}")
def delete_image(work_id: int, chapter_id: int, image_id: int):
    work, chapter, image = _load_image(work_id, chapter_id, image_id)
    deps.get_storage().delete_image_file(work.slug, chapter.number, chapter.id, image.filename)
    deps.get_repo().delete_image(image.id)
    return {"ok": True}
