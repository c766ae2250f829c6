from __future__ import annotations

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from chapter_reader.pipeline import QueueFull

from api import dependencies as deps
from api.serializers import chapter_dict, image_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["submit"])


class ChapterSubmission(BaseModel):
    work: Union[int, str]
    chapter_number: Optional[str] = None
    url: str
    image_urls: List[str]


@router.post("/chapters/submit", status_code=201)
async def submit_chapter(body: ChapterSubmission):
    """
    Create a chapter with its images and queue the download/extraction run.
    The response is sent as soon as the run is queued.
    """
    if not body.url.strip():
        raise HTTPException(status_code=400, detail="url is required")

    repo = deps.get_repo()
    work = None
    if isinstance(body.work, int) or str(body.work).isdigit():
        work = repo.get_work(int(body.work))
    if not work:
        work = repo.get_work_by_slug(str(body.work))
    if not work:
        raise HTTPException(status_code=404, detail=f"Work not found: {body.work}")

    chapter = repo.create_chapter(work.id, source_url=body.url, number=body.chapter_number or None)
    deps.get_storage().ensure_chapter_dir(work.slug, chapter.number, chapter.id)
    images = repo.create_images(chapter.id, body.image_urls)

    try:
        queued = deps.enqueue_pipeline_run(chapter.id)
    except QueueFull as exc:
        logger.warning("Chapter %s created but not queued: %s", chapter.id, exc)
        raise HTTPException(status_code=503, detail=str(exc))

    return {
        "chapter": chapter_dict(chapter),
        "images": [image_dict(i) for i in images],
        "queued": queued,
    }
