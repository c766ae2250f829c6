from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class PipelineStatus(str, Enum):
    IDLE = "idle"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    DONE = "done"
    ERROR = "error"


class ImageStatus(str, Enum):
    PENDING = "pending"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


class ExtractionStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BBox:
    x: float
    y: float
    w: float
    h: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class OcrBlock:
    """
    One text block returned by an OCR engine. The bounding region is kept as a
    plain dict so rectangles and polygon vertices can both be stored.
    """

    text: str
    bbox: Optional[Dict[str, Any]] = None
    confidence: Optional[float] = None
    language: Optional[str] = None


@dataclass
class WorkRecord:
    id: int
    title: str
    slug: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ChapterRecord:
    id: int
    work_id: int
    source_url: str
    number: Optional[str] = None
    pipeline_status: PipelineStatus = PipelineStatus.IDLE
    is_read: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ImageRecord:
    id: int
    chapter_id: int
    position: int
    url: str
    filename: str = ""
    status: ImageStatus = ImageStatus.PENDING
    ocr_data: Optional[List[Dict[str, Any]]] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ExtractionRecord:
    id: int
    image_id: int
    text: str
    bbox: Optional[Dict[str, Any]] = None
    confidence: Optional[float] = None
    language: Optional[str] = None
    status: ExtractionStatus = ExtractionStatus.PENDING
    translated_text: Optional[str] = None
    translated_lang: Optional[str] = None
    translate_status: ExtractionStatus = ExtractionStatus.PENDING
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ImageStatusCounts:
    total: int = 0
    downloaded: int = 0
    pending: int = 0
    failed: int = 0


@dataclass
class ChapterProgress:
    chapter: ChapterRecord
    counts: ImageStatusCounts
    images_with_extractions: int = 0
    all_extracted: bool = False
    images_with_translations: int = 0
    all_translated: bool = False
    total_extractions: int = 0
