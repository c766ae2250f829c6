from typing import List, Optional, Sequence

import pytest

from chapter_reader.pipeline import (
    InMemoryPipelineRepository,
    LocalWorkStorage,
    OcrBlock,
    StoragePaths,
)


class FakeOcrEngine:
    """Records every call and returns one block per image. Filenames in `fail_on` raise."""

    def __init__(self):
        self.calls: List[str] = []
        self.fail_on = set()

    async def detect_text(self, *, content: Optional[bytes] = None, uri: Optional[str] = None, filename: Optional[str] = None):
        key = filename or uri
        self.calls.append(key)
        if key in self.fail_on:
            raise RuntimeError(f"ocr exploded on {key}")
        return [
            OcrBlock(text=f"hello {key}", bbox={"x": 1, "y": 2, "w": 30, "h": 10}, confidence=0.9),
            OcrBlock(text=f"world {key}", bbox={"x": 1, "y": 20, "w": 30, "h": 10}),
        ]


class FakeTranslator:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.batches: List[List[str]] = []

    async def translate(self, texts: Sequence[str], target_language: str) -> List[str]:
        self.batches.append(list(texts))
        if self.fail:
            raise RuntimeError("translation service down")
        return [f"[{target_language}] {t}" for t in texts]


@pytest.fixture
def repo():
    return InMemoryPipelineRepository()


@pytest.fixture
def storage(tmp_path):
    return LocalWorkStorage(StoragePaths(tmp_path / "works"))


@pytest.fixture
def ocr_engine():
    return FakeOcrEngine()


@pytest.fixture
def translator():
    return FakeTranslator()


@pytest.fixture
def make_chapter(repo):
    def _make(urls, number: Optional[str] = "1", title: str = "Solo Leveling", slug: str = "solo-leveling"):
        work = repo.get_work_by_slug(slug) or repo.create_work(title, slug)
        chapter = repo.create_chapter(work.id, source_url=f"https://reader.example/{slug}/{number}", number=number)
        images = repo.create_images(chapter.id, urls)
        return work, chapter, images

    return _make


@pytest.fixture
def failing_translator():
    return FakeTranslator(fail=True)
