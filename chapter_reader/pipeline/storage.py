from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9\-_.]+", re.IGNORECASE)


def sanitize_path_token(value: str) -> str:
    """Replace every run of characters outside [a-z0-9-_.] with a single underscore."""
    return _UNSAFE_CHARS.sub("_", str(value))


def chapter_dir_name(number: Optional[str], chapter_id: int) -> str:
    if number:
        return f"cap_{sanitize_path_token(number)}"
    return f"cap_{chapter_id}"


@dataclass
class StoragePaths:
    root: Path

    def work_dir(self, slug: str) -> Path:
        return self.root / slug

    def chapter_dir(self, slug: str, number: Optional[str], chapter_id: int) -> Path:
        return self.work_dir(slug) / chapter_dir_name(number, chapter_id)

    def image_path(self, slug: str, number: Optional[str], chapter_id: int, filename: str) -> Path:
        return self.chapter_dir(slug, number, chapter_id) / filename


class LocalWorkStorage:
    """
    Manages the on-disk layout for works, their chapter folders and downloaded images:
    <root>/<work-slug>/cap_<chapter-number-or-id>/<filename>.
    """

    def __init__(self, storage_paths: StoragePaths):
        self.paths = storage_paths

    def ensure_work_dir(self, slug: str) -> Path:
        target = self.paths.work_dir(slug)
        target.mkdir(parents=True, exist_ok=True)
        return target

    def ensure_chapter_dir(self, slug: str, number: Optional[str], chapter_id: int) -> Path:
        target = self.paths.chapter_dir(slug, number, chapter_id)
        target.mkdir(parents=True, exist_ok=True)
        return target

    def image_path(self, slug: str, number: Optional[str], chapter_id: int, filename: str) -> Path:
        return self.paths.image_path(slug, number, chapter_id, filename)

    def image_exists(self, slug: str, number: Optional[str], chapter_id: int, filename: str) -> bool:
        if not filename:
            return False
        return self.image_path(slug, number, chapter_id, filename).is_file()

    def delete_work_dir(self, slug: str) -> None:
        self._remove_tree(self.paths.work_dir(slug))

    def delete_chapter_dir(self, slug: str, number: Optional[str], chapter_id: int) -> None:
        self._remove_tree(self.paths.chapter_dir(slug, number, chapter_id))

    def delete_image_file(self, slug: str, number: Optional[str], chapter_id: int, filename: str) -> None:
        if not filename:
            return
        target = self.image_path(slug, number, chapter_id, filename)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove image file %s: %s", target, exc)

    def _remove_tree(self, target: Path) -> None:
        if not target.exists():
            return
        try:
            shutil.rmtree(target)
        except OSError as exc:
            logger.warning("Could not fully remove %s: %s", target, exc)
