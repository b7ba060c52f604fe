"""Persistent local cache for downloaded AR videos."""

import os
import re
import tempfile
from pathlib import Path
from typing import Callable, Optional

from . import config
from .timing import time_operation

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def cache_key(content_hash: str) -> str:
    return f"ar-video-{content_hash}"


class VideoCache:
    """File-backed key/value store: one file per key under ``directory``.

    Entries are written to a temporary file and renamed into place, so a key
    is either absent or holds the complete value.
    """

    def __init__(self, directory: Path = config.VIDEO_CACHE_DIR):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key) or key.startswith("."):
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.directory / key

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, data: bytes) -> None:
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".incoming-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def __contains__(self, key: str) -> bool:
        return self._path(key).exists()


def cache_or_fetch(cache: VideoCache, content_hash: str, fetch: Callable[[str], bytes]) -> bytes:
    """Return the video bytes for ``content_hash``, downloading them only on a cache miss."""
    key = cache_key(content_hash)
    data = cache.get(key)
    if data is not None:
        print(f"📦 Using cached video {content_hash}")
        return data

    with time_operation("Video Download", track_memory=True):
        data = fetch(content_hash)
    cache.set(key, data)
    return data
