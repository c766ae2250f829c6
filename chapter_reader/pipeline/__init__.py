"""
Chapter pipeline exports.
"""

from .downloader import BatchDownloader
from .errors import (
    ChapterNotFound,
    ImageNotFound,
    NotFoundError,
    PipelineError,
    QueueFull,
    TranslationUnavailable,
    WorkNotFound,
)
from .extraction import ExtractionDriver
from .fetcher import ImageFetcher, extension_from_url, image_filename
from .job_queue import LocalJobQueue, RQJobQueue, WorkerConfig, build_orchestrator, run_pipeline_job
from .limiter import ConcurrencyLimiter
from .models import (
    BBox,
    ChapterProgress,
    ChapterRecord,
    ExtractionRecord,
    ExtractionStatus,
    ImageRecord,
    ImageStatus,
    ImageStatusCounts,
    OcrBlock,
    PipelineStatus,
    WorkRecord,
)
from .ocr import DoclingOcrEngine, OcrEngine
from .orchestrator import PipelineOrchestrator
from .repository import InMemoryPipelineRepository, PipelineRepository, SqlAlchemyPipelineRepository
from .status import StatusAggregator
from .storage import LocalWorkStorage, StoragePaths, sanitize_path_token
from .translation import GoogleTranslateClient, TranslationClient

__all__ = [
    "BBox",
    "BatchDownloader",
    "ChapterNotFound",
    "ChapterProgress",
    "ChapterRecord",
    "ConcurrencyLimiter",
    "DoclingOcrEngine",
    "ExtractionDriver",
    "ExtractionRecord",
    "ExtractionStatus",
    "GoogleTranslateClient",
    "ImageFetcher",
    "ImageNotFound",
    "ImageRecord",
    "ImageStatus",
    "ImageStatusCounts",
    "InMemoryPipelineRepository",
    "LocalJobQueue",
    "LocalWorkStorage",
    "NotFoundError",
    "OcrBlock",
    "OcrEngine",
    "PipelineError",
    "PipelineOrchestrator",
    "PipelineRepository",
    "PipelineStatus",
    "QueueFull",
    "RQJobQueue",
    "SqlAlchemyPipelineRepository",
    "StatusAggregator",
    "StoragePaths",
    "TranslationClient",
    "TranslationUnavailable",
    "WorkNotFound",
    "WorkRecord",
    "WorkerConfig",
    "build_orchestrator",
    "extension_from_url",
    "image_filename",
    "run_pipeline_job",
    "sanitize_path_token",
]
