from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set

from redis import Redis
from rq import Queue, Worker
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus

from .downloader import BatchDownloader
from .errors import QueueFull
from .extraction import ExtractionDriver
from .fetcher import ImageFetcher
from .ocr import DoclingOcrEngine
from .orchestrator import PipelineOrchestrator
from .repository import SqlAlchemyPipelineRepository
from .storage import LocalWorkStorage, StoragePaths
from .translation import GoogleTranslateClient

logger = logging.getLogger(__name__)

_ACTIVE_RQ_STATUSES = {JobStatus.QUEUED, JobStatus.STARTED, JobStatus.DEFERRED, JobStatus.SCHEDULED}


@dataclass
class WorkerConfig:
    database_url: str
    work_storage_root: str
    retry_count: int = 2
    concurrency: int = 3
    fetch_timeout: float = 15.0
    ocr_languages: List[str] = field(default_factory=list)
    translate_api_key: Optional[str] = None


def build_orchestrator(config: WorkerConfig) -> PipelineOrchestrator:
    repo = SqlAlchemyPipelineRepository(config.database_url)
    storage = LocalWorkStorage(StoragePaths(Path(config.work_storage_root)))
    downloader = BatchDownloader(repo, storage, ImageFetcher(timeout=config.fetch_timeout))
    translator = GoogleTranslateClient(config.translate_api_key) if config.translate_api_key else None
    driver = ExtractionDriver(
        repo,
        storage,
        DoclingOcrEngine(lang=config.ocr_languages or None),
        translator=translator,
    )
    return PipelineOrchestrator(
        repository=repo,
        downloader=downloader,
        extraction_driver=driver,
        retry_count=config.retry_count,
        concurrency=config.concurrency,
    )


def run_pipeline_job(chapter_id: int, config: WorkerConfig) -> Optional[str]:
    """
    RQ task entrypoint. Creates all required components and runs one pipeline
    pass for the chapter on a fresh event loop.
    """
    orchestrator = build_orchestrator(config)
    status = asyncio.run(orchestrator.run(chapter_id))
    return status.value if status else None


def pipeline_job_id(chapter_id: int) -> str:
    return f"pipeline-{chapter_id}"


class RQJobQueue:
    """
    Redis-backed job queue using RQ. The queue pushes jobs to Redis and workers
    can be started by calling `work()` in a dedicated process. Job ids are
    derived from the chapter id, so a chapter is never queued twice while a run
    for it is still waiting or executing.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", queue_name: str = "chapter-pipeline"):
        self.redis = Redis.from_url(redis_url)
        self.queue = Queue(queue_name, connection=self.redis)

    def enqueue_pipeline_run(self, chapter_id: int, config: WorkerConfig) -> Job:
        job_id = pipeline_job_id(chapter_id)
        existing = self._active_job(job_id)
        if existing is not None:
            logger.info("Pipeline job %s already %s, not enqueuing again", job_id, existing.get_status())
            return existing
        return self.queue.enqueue(run_pipeline_job, chapter_id, config, job_id=job_id, retry=None)

    def _active_job(self, job_id: str) -> Optional[Job]:
        try:
            job = Job.fetch(job_id, connection=self.redis)
        except NoSuchJobError:
            return None
        return job if job.get_status() in _ACTIVE_RQ_STATUSES else None

    def work(self):
        worker = Worker([self.queue], connection=self.redis)
        worker.work(with_scheduler=True)


class LocalJobQueue:
    """
    In-process handoff between request handlers and pipeline runs: a bounded
    asyncio.Queue drained by background consumer tasks on the running loop.

    `submit` never waits. It refuses a chapter that is already waiting in the
    queue and raises QueueFull when the queue is at capacity.
    """

    def __init__(self, orchestrator: PipelineOrchestrator, maxsize: int = 100, workers: int = 1):
        self.orchestrator = orchestrator
        self.maxsize = maxsize
        self.workers = workers
        self._queue: Optional[asyncio.Queue] = None
        self._pending: Set[int] = set()
        self._consumers: List[asyncio.Task] = []

    @property
    def started(self) -> bool:
        return bool(self._consumers)

    def start(self) -> None:
        if self.started:
            return
        self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._consumers = [asyncio.create_task(self._consume(i)) for i in range(self.workers)]
        logger.info("Local pipeline queue started with %d consumer(s)", self.workers)

    def submit(self, chapter_id: int) -> bool:
        if self._queue is None:
            raise RuntimeError("LocalJobQueue.start() must be called before submit()")
        if chapter_id in self._pending:
            logger.info("Chapter %s already queued, skipping", chapter_id)
            return False
        try:
            self._queue.put_nowait(chapter_id)
        except asyncio.QueueFull as exc:
            raise QueueFull(f"Pipeline queue is full ({self.maxsize} pending)") from exc
        self._pending.add(chapter_id)
        return True

    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def join(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        if not self.started:
            return
        if drain:
            try:
                await asyncio.wait_for(self.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Local pipeline queue did not drain within %ss, cancelling %d pending run(s)",
                               timeout, self.pending())
        for consumer in self._consumers:
            consumer.cancel()
        await asyncio.gather(*self._consumers, return_exceptions=True)
        self._consumers = []
        logger.info("Local pipeline queue stopped")

    async def _consume(self, worker_index: int) -> None:
        if self._queue is None:
            raise RuntimeError("LocalJobQueue.start() must be called before consuming")
        while True:
            chapter_id = await self._queue.get()
            self._pending.discard(chapter_id)
            try:
                await self.orchestrator.run(chapter_id)
            except Exception:  # noqa: BLE001
                logger.exception("Consumer %d: pipeline run for chapter %s crashed", worker_index, chapter_id)
            finally:
                self._queue.task_done()
