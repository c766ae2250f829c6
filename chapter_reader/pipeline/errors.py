from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors raised by the chapter pipeline."""


class NotFoundError(PipelineError):
    entity = "record"

    def __init__(self, record_id):
        self.record_id = record_id
        super().__init__(f"{self.entity} not found: {record_id}")


class WorkNotFound(NotFoundError):
    entity = "Work"


class ChapterNotFound(NotFoundError):
    entity = "Chapter"


class ImageNotFound(NotFoundError):
    entity = "Image"


class TranslationUnavailable(PipelineError):
    """Raised when translation is requested but no client is configured."""


class QueueFull(PipelineError):
    """The local pipeline queue cannot accept more chapters right now."""
