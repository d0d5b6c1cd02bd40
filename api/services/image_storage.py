"""Local filesystem storage for step images.

The database only records the public path (``/uploads/steps/<file>``); the
bytes live under ``Settings.uploads_path`` and are served by the static mount
in main.py.
"""

from __future__ import annotations

import logging
import re
import uuid
from functools import lru_cache
from pathlib import Path

from core.config import get_settings

logger = logging.getLogger(__name__)


def _sanitize_filename(filename: str) -> str:
    """Spaces become underscores; anything outside [word . -] is dropped."""
    name = Path(filename).name.replace(" ", "_")
    return re.sub(r"[^\w.\-]", "", name)


class LocalImageStorage:
    """Stores bytes under ``root`` and hands back ``<url_prefix>/<file name>``."""

    def __init__(self, root: Path, url_prefix: str):
        self.root = root
        self.url_prefix = url_prefix.rstrip("/")

    def store(self, data: bytes, filename: str) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        safe_name = _sanitize_filename(filename) or "image"
        stored_name = f"{uuid.uuid4().hex}_{safe_name}"
        (self.root / stored_name).write_bytes(data)
        return f"{self.url_prefix}/{stored_name}"

    def resolve(self, path: str) -> Path | None:
        """Map a recorded path back to a file under root, or None if foreign."""
        prefix = f"{self.url_prefix}/"
        if not path.startswith(prefix):
            return None
        name = path[len(prefix) :]
        if not name or "/" in name or name in (".", ".."):
            return None
        return self.root / name

    def delete(self, path: str) -> bool:
        """Remove a stored file. Missing files are logged, not raised."""
        file_path = self.resolve(path)
        if file_path is None:
            logger.warning("image.delete.foreign_path", extra={"path": path})
            return False
        try:
            file_path.unlink()
        except FileNotFoundError:
            logger.warning("image.delete.missing_file", extra={"path": path})
            return False
        return True

    def delete_many(self, paths: list[str]) -> int:
        return sum(1 for path in paths if self.delete(path))


@lru_cache(maxsize=1)
def get_image_storage() -> LocalImageStorage:
    settings = get_settings()
    return LocalImageStorage(settings.uploads_path, settings.uploads_url_prefix)
