from __future__ import annotations

import logging
import os
import re
import unicodedata
from functools import lru_cache
from pathlib import Path
from typing import Optional

from chapter_reader.pipeline import (
    BatchDownloader,
    DoclingOcrEngine,
    ExtractionDriver,
    GoogleTranslateClient,
    ImageFetcher,
    LocalJobQueue,
    LocalWorkStorage,
    PipelineOrchestrator,
    PipelineRepository,
    RQJobQueue,
    SqlAlchemyPipelineRepository,
    StatusAggregator,
    StoragePaths,
    TranslationClient,
    WorkerConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./data/chapter_reader.db"
DEFAULT_STORAGE_ROOT = "./data/works"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def pipeline_queue_backend() -> str:
    return os.getenv("PIPELINE_QUEUE", "local").strip().lower()


def default_target_language() -> str:
    return os.getenv("DEFAULT_TARGET_LANG", "pt-BR")


def get_worker_config() -> WorkerConfig:
    languages = [lang.strip() for lang in os.getenv("OCR_LANGUAGES", "").split(",") if lang.strip()]
    return WorkerConfig(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        work_storage_root=os.getenv("WORK_STORAGE_ROOT", DEFAULT_STORAGE_ROOT),
        retry_count=_env_int("PIPELINE_RETRY_COUNT", 2),
        concurrency=_env_int("PIPELINE_CONCURRENCY", 3),
        fetch_timeout=float(os.getenv("FETCH_TIMEOUT", "15")),
        ocr_languages=languages,
        translate_api_key=os.getenv("GOOGLE_TRANSLATE_API_KEY") or None,
    )


@lru_cache(maxsize=1)
def get_repo() -> PipelineRepository:
    return SqlAlchemyPipelineRepository(get_worker_config().database_url)


@lru_cache(maxsize=1)
def get_storage() -> LocalWorkStorage:
    return LocalWorkStorage(StoragePaths(Path(get_worker_config().work_storage_root)))


@lru_cache(maxsize=1)
def get_translator() -> Optional[TranslationClient]:
    api_key = get_worker_config().translate_api_key
    if not api_key:
        logger.info("GOOGLE_TRANSLATE_API_KEY not set, translation disabled")
        return None
    return GoogleTranslateClient(api_key)


@lru_cache(maxsize=1)
def get_downloader() -> BatchDownloader:
    config = get_worker_config()
    return BatchDownloader(get_repo(), get_storage(), ImageFetcher(timeout=config.fetch_timeout))


@lru_cache(maxsize=1)
def get_extraction_driver() -> ExtractionDriver:
    config = get_worker_config()
    engine = DoclingOcrEngine(lang=config.ocr_languages or None)
    return ExtractionDriver(get_repo(), get_storage(), engine, translator=get_translator())


@lru_cache(maxsize=1)
def get_orchestrator() -> PipelineOrchestrator:
    config = get_worker_config()
    return PipelineOrchestrator(
        repository=get_repo(),
        downloader=get_downloader(),
        extraction_driver=get_extraction_driver(),
        retry_count=config.retry_count,
        concurrency=config.concurrency,
    )


@lru_cache(maxsize=1)
def get_status_aggregator() -> StatusAggregator:
    return StatusAggregator(get_repo())


@lru_cache(maxsize=1)
def get_local_queue() -> LocalJobQueue:
    return LocalJobQueue(
        get_orchestrator(),
        maxsize=_env_int("PIPELINE_QUEUE_SIZE", 100),
        workers=_env_int("PIPELINE_QUEUE_WORKERS", 1),
    )


@lru_cache(maxsize=1)
def get_rq_queue() -> RQJobQueue:
    return RQJobQueue(os.getenv("REDIS_URL", "redis://localhost:6379/0"))


def enqueue_pipeline_run(chapter_id: int) -> bool:
    """
    Hand a chapter to the configured pipeline queue without waiting for the run.
    Returns False when a run for the chapter is already waiting.
    """
    if pipeline_queue_backend() == "rq":
        get_rq_queue().enqueue_pipeline_run(chapter_id, get_worker_config())
        return True
    return get_local_queue().submit(chapter_id)


def build_work_slug(title: str) -> str:
    normalized = unicodedata.normalize("NFKD", title.strip().lower())
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_only).strip("-")
    return slug or "work"
