import asyncio
import logging
from collections import Counter

import httpx

from chapter_reader.pipeline import BatchDownloader, ImageFetcher, ImageStatus, PipelineStatus


def _downloader(repo, storage, handler):
    return BatchDownloader(repo, storage, ImageFetcher(transport=httpx.MockTransport(handler)))


def test_download_marks_each_image_and_writes_files(repo, storage, make_chapter):
    work, chapter, images = make_chapter(
        ["https://cdn.example.com/a.png", "https://cdn.example.com/b.jpg", "https://cdn.example.com/c.webp"]
    )

    def handler(request):
        if request.url.path == "/b.jpg":
            return httpx.Response(404)
        return httpx.Response(200, content=request.url.path.encode())

    downloader = _downloader(repo, storage, handler)
    attempted = asyncio.run(downloader.download_images(chapter.id, retry_count=0))

    assert attempted == 3
    stored = {img.position: img for img in repo.list_images_for_chapter(chapter.id)}
    assert stored[1].status == ImageStatus.DOWNLOADED and stored[1].filename == "001.png"
    assert stored[2].status == ImageStatus.FAILED
    assert stored[3].status == ImageStatus.DOWNLOADED and stored[3].filename == "003.webp"
    chapter_dir = storage.paths.chapter_dir(work.slug, chapter.number, chapter.id)
    assert chapter_dir.name == "cap_1"
    assert (chapter_dir / "001.png").read_bytes() == b"/a.png"
    assert not downloader.all_downloaded(chapter.id)


def test_retry_bound_is_retry_count_plus_one(repo, storage, make_chapter):
    _, chapter, _ = make_chapter(["https://cdn.example.com/flaky.jpg"])
    calls = Counter()

    def handler(request):
        calls[str(request.url)] += 1
        return httpx.Response(503)

    downloader = _downloader(repo, storage, handler)
    asyncio.run(downloader.download_images(chapter.id, retry_count=2))

    assert calls["https://cdn.example.com/flaky.jpg"] == 3
    assert repo.count_images(chapter.id, status=ImageStatus.FAILED) == 1


def test_transient_failure_recovers_within_retries(repo, storage, make_chapter):
    _, chapter, _ = make_chapter(["https://cdn.example.com/flaky.jpg"])
    calls = Counter()

    def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, content=b"ok")

    downloader = _downloader(repo, storage, handler)
    asyncio.run(downloader.download_images(chapter.id, retry_count=1))

    assert calls["n"] == 2
    assert downloader.all_downloaded(chapter.id)


def test_second_run_skips_downloaded_images(repo, storage, make_chapter):
    _, chapter, _ = make_chapter(["https://cdn.example.com/1.jpg", "https://cdn.example.com/2.jpg"])
    calls = Counter()

    def handler(request):
        calls["n"] += 1
        return httpx.Response(200, content=b"img")

    downloader = _downloader(repo, storage, handler)
    asyncio.run(downloader.download_images(chapter.id))
    assert calls["n"] == 2

    attempted = asyncio.run(downloader.download_images(chapter.id))
    assert attempted == 0
    assert calls["n"] == 2


def test_concurrency_never_exceeds_limit(repo, storage, make_chapter):
    _, chapter, _ = make_chapter([f"https://cdn.example.com/{i}.jpg" for i in range(8)])
    state = {"in_flight": 0, "peak": 0}

    async def handler(request):
        state["in_flight"] += 1
        state["peak"] = max(state["peak"], state["in_flight"])
        await asyncio.sleep(0.01)
        state["in_flight"] -= 1
        return httpx.Response(200, content=b"img")

    downloader = _downloader(repo, storage, handler)
    asyncio.run(downloader.download_images(chapter.id, concurrency=2))

    assert state["peak"] == 2
    assert downloader.all_downloaded(chapter.id)


def test_concurrency_of_one_runs_downloads_serially(repo, storage, make_chapter):
    _, chapter, _ = make_chapter([f"https://cdn.example.com/{i}.jpg" for i in range(4)])
    state = {"in_flight": 0, "peak": 0}
    order = []

    async def handler(request):
        state["in_flight"] += 1
        state["peak"] = max(state["peak"], state["in_flight"])
        order.append(request.url.path)
        await asyncio.sleep(0.01)
        state["in_flight"] -= 1
        return httpx.Response(200, content=b"img")

    downloader = _downloader(repo, storage, handler)
    asyncio.run(downloader.download_images(chapter.id, concurrency=1))

    assert state["peak"] == 1
    assert order == ["/0.jpg", "/1.jpg", "/2.jpg", "/3.jpg"]


def test_retry_failed_images_only_touches_failed(repo, storage, make_chapter):
    _, chapter, _ = make_chapter(["https://cdn.example.com/ok.jpg", "https://cdn.example.com/broken.jpg"])
    seen = []
    broken = {"value": True}

    def handler(request):
        seen.append(request.url.path)
        if request.url.path == "/broken.jpg" and broken["value"]:
            return httpx.Response(500)
        return httpx.Response(200, content=b"img")

    downloader = _downloader(repo, storage, handler)
    assert asyncio.run(downloader.retry_failed_images(chapter.id)) == 0

    asyncio.run(downloader.download_images(chapter.id, retry_count=0))
    seen.clear()
    broken["value"] = False

    retried = asyncio.run(downloader.retry_failed_images(chapter.id, retry_count=0))
    assert retried == 1
    assert seen == ["/broken.jpg"]
    assert downloader.all_downloaded(chapter.id)


def test_single_image_retry_leaves_siblings_and_chapter_alone(repo, storage, make_chapter):
    _, chapter, images = make_chapter(["https://cdn.example.com/1.jpg", "https://cdn.example.com/2.jpg"])
    repo.update_image(images[0].id, status=ImageStatus.FAILED)
    repo.update_image(images[1].id, status=ImageStatus.FAILED)
    repo.update_chapter_status(chapter.id, PipelineStatus.ERROR)

    downloader = _downloader(repo, storage, lambda request: httpx.Response(200, content=b"img"))
    updated = asyncio.run(downloader.download_single_image(images[0].id))

    assert updated.status == ImageStatus.DOWNLOADED
    assert repo.get_image(images[1].id).status == ImageStatus.FAILED
    assert repo.get_chapter(chapter.id).pipeline_status == PipelineStatus.ERROR


def test_all_downloaded_is_false_for_empty_chapter(repo, storage, make_chapter):
    _, chapter, _ = make_chapter([])
    downloader = _downloader(repo, storage, lambda request: httpx.Response(200))
    assert asyncio.run(downloader.download_images(chapter.id)) == 0
    assert downloader.all_downloaded(chapter.id) is False


def test_invalid_url_is_retried_and_marked_failed(repo, storage, make_chapter, caplog):
    _, chapter, images = make_chapter(["https://cdn.example.com/\x00.jpg"])
    downloader = _downloader(repo, storage, lambda request: httpx.Response(200, content=b"img"))

    with caplog.at_level(logging.WARNING, logger="chapter_reader.pipeline.downloader"):
        asyncio.run(downloader.download_images(chapter.id, retry_count=2))

    attempts = [r for r in caplog.records if "attempt" in r.getMessage() and r.levelno == logging.WARNING]
    assert len(attempts) == 3
    assert repo.get_image(images[0].id).status == ImageStatus.FAILED

    repo.update_image(images[0].id, status=ImageStatus.PENDING)
    updated = asyncio.run(downloader.download_single_image(images[0].id, retry_count=1))
    assert updated.status == ImageStatus.FAILED
