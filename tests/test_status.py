import pytest

from chapter_reader.pipeline import (
    ChapterNotFound,
    ExtractionStatus,
    ImageStatus,
    OcrBlock,
    StatusAggregator,
    WorkNotFound,
)


def test_chapter_status_counts(repo, make_chapter):
    _, chapter, images = make_chapter([f"https://cdn.example.com/{i}.jpg" for i in range(4)])
    repo.update_image(images[0].id, status=ImageStatus.DOWNLOADED)
    repo.update_image(images[1].id, status=ImageStatus.DOWNLOADED)
    repo.update_image(images[2].id, status=ImageStatus.FAILED)

    counts = StatusAggregator(repo).chapter_status(chapter.id)

    assert (counts.total, counts.downloaded, counts.pending, counts.failed) == (4, 2, 1, 1)


def test_chapter_status_unknown_chapter(repo):
    with pytest.raises(ChapterNotFound):
        StatusAggregator(repo).chapter_status(42)


def test_work_progress_coverage_and_ordering(repo, make_chapter):
    work, first, first_images = make_chapter(["https://cdn.example.com/1.jpg", "https://cdn.example.com/2.jpg"], number="1")
    _, tenth, _ = make_chapter(["https://cdn.example.com/3.jpg"], number="10")
    _, extra, _ = make_chapter([], number="special")
    _, second, _ = make_chapter([], number="2")

    extractions = repo.create_extractions(first_images[0].id, [OcrBlock(text="a"), OcrBlock(text="b")])
    repo.update_extraction_translation(extractions[0].id, translated_text="A", translate_status=ExtractionStatus.DONE)

    progress = StatusAggregator(repo).work_progress(work.id)

    assert [p.chapter.id for p in progress] == [tenth.id, second.id, first.id, extra.id]
    first_progress = progress[2]
    assert first_progress.counts.total == 2
    assert first_progress.images_with_extractions == 1
    assert first_progress.all_extracted is False
    assert first_progress.images_with_translations == 1
    assert first_progress.total_extractions == 2

    empty = progress[3]
    assert empty.counts.total == 0
    assert empty.all_extracted is False and empty.all_translated is False


def test_work_progress_all_extracted(repo, make_chapter):
    work, _, images = make_chapter(["https://cdn.example.com/1.jpg"])
    repo.create_extractions(images[0].id, [OcrBlock(text="a")])
    (progress,) = StatusAggregator(repo).work_progress(work.id)
    assert progress.all_extracted is True
    assert progress.all_translated is False


def test_work_progress_unknown_work(repo):
    with pytest.raises(WorkNotFound):
        StatusAggregator(repo).work_progress(7)
