"""
Example: register a chapter and run the download + OCR pipeline on it using SQLite + Docling.

Usage:
    python3 pipeline_demo.py --title "Solo Leveling" --chapter-number 1 \
        --url https://reader.example/solo-leveling/1 https://cdn.example.com/1.jpg https://cdn.example.com/2.jpg
"""

import argparse
import asyncio
import logging
import os
from pathlib import Path

from api.dependencies import build_work_slug
from chapter_reader.pipeline import (
    BatchDownloader,
    DoclingOcrEngine,
    ExtractionDriver,
    GoogleTranslateClient,
    ImageFetcher,
    LocalWorkStorage,
    PipelineOrchestrator,
    SqlAlchemyPipelineRepository,
    StatusAggregator,
    StoragePaths,
)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("image_urls", nargs="+", help="Image URLs in reading order")
    parser.add_argument("--title", required=True, help="Work title")
    parser.add_argument("--chapter-number", default=None, help="Chapter number label")
    parser.add_argument("--url", required=True, help="Chapter page URL")
    parser.add_argument("--db", default=Path("./data/chapter_reader.db"), type=Path, help="SQLite DB path")
    parser.add_argument("--storage-root", default=Path("./data/works"), type=Path, help="Storage root for works")
    parser.add_argument("--retry-count", default=2, type=int, help="Extra download attempts per image")
    parser.add_argument("--concurrency", default=3, type=int, help="Parallel downloads")
    parser.add_argument("--translate-to", default=None, help="Translate extracted text to this language")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    args.db.parent.mkdir(parents=True, exist_ok=True)
    repo = SqlAlchemyPipelineRepository(f"sqlite+pysqlite:///{args.db}")
    storage = LocalWorkStorage(StoragePaths(args.storage_root))

    api_key = os.getenv("GOOGLE_TRANSLATE_API_KEY")
    translator = GoogleTranslateClient(api_key) if api_key else None
    driver = ExtractionDriver(repo, storage, DoclingOcrEngine(), translator=translator)
    orchestrator = PipelineOrchestrator(
        repository=repo,
        downloader=BatchDownloader(repo, storage, ImageFetcher()),
        extraction_driver=driver,
        retry_count=args.retry_count,
        concurrency=args.concurrency,
    )

    slug = build_work_slug(args.title)
    work = repo.get_work_by_slug(slug) or repo.create_work(args.title, slug)
    chapter = repo.create_chapter(work.id, source_url=args.url, number=args.chapter_number)
    images = repo.create_images(chapter.id, args.image_urls)

    print(f"Starting pipeline for chapter {chapter.id} of {work.title} ({len(images)} images)")
    status = asyncio.run(orchestrator.run(chapter.id))
    counts = StatusAggregator(repo).chapter_status(chapter.id)
    print(f"Pipeline finished with status={status.value if status else None}, "
          f"downloaded={counts.downloaded}/{counts.total}, failed={counts.failed}")

    if args.translate_to and translator is not None:
        for image in repo.list_images_for_chapter(chapter.id):
            if repo.list_extractions_for_images([image.id]):
                translated = asyncio.run(driver.translate_image(image.id, args.translate_to))
                print(f"Image {image.position}: translated {len(translated)} block(s)")
    elif args.translate_to:
        print("GOOGLE_TRANSLATE_API_KEY not set, skipping translation")

    print(f"Images stored under: {storage.paths.chapter_dir(work.slug, chapter.number, chapter.id)}")


if __name__ == "__main__":
    main()
