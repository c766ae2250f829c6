from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel

from chapter_reader.pipeline import WorkNotFound

from api import dependencies as deps
from api.serializers import chapter_dict, progress_dict, work_dict

router = APIRouter(prefix="/works", tags=["works"])


class WorkCreate(BaseModel):
    title: str


@router.post("", status_code=201)
def create_work(body: WorkCreate, response: Response):
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="title is required")
    repo = deps.get_repo()
    slug = deps.build_work_slug(title)
    work = repo.get_work_by_slug(slug)
    if work:
        response.status_code = 200
    else:
        work = repo.create_work(title=title, slug=slug)
    deps.get_storage().ensure_work_dir(work.slug)
    return {"work": work_dict(work)}


@router.get("")
def list_works():
    return {"works": [work_dict(w) for w in deps.get_repo().list_works()]}


@router.get("/{work_id}")
def get_work(work_id: int):
    repo = deps.get_repo()
    work = repo.get_work(work_id)
    if not work:
        raise HTTPException(status_code=404, detail=f"Work not found: {work_id}")
    chapters = repo.list_chapters_for_work(work_id)
    return {"work": work_dict(work), "chapters": [chapter_dict(c) for c in chapters]}


@router.delete("/{work_id}")
def delete_work(work_id: int):
    repo = deps.get_repo()
    work = repo.get_work(work_id)
    if not work:
        raise HTTPException(status_code=404, detail=f"Work not found: {work_id}")
    deps.get_storage().delete_work_dir(work.slug)
    repo.delete_work(work.id)
    return {"ok": True}


@router.get("/{work_id}/chapters/poll")
def poll_chapters(work_id: int):
    try:
        progress = deps.get_status_aggregator().work_progress(work_id)
    except WorkNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"total_chapters": len(progress), "chapters": [progress_dict(p) for p in progress]}
