"""Revocable local references to in-memory video bytes."""

import mimetypes
import secrets
import shutil
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from . import config

_EXTENSIONS = {"video/webm": ".webm", "video/mp4": ".mp4"}


@dataclass(frozen=True)
class ObjectUrl:
    token: str
    path: Path
    mime_type: str
    url: str


class ObjectUrlRegistry:
    """Create playable references for byte payloads and release them again.

    Each reference is backed by a temporary file. When ``base_url`` is set the
    reference is an HTTP URL served by :mod:`eternallink.web`; otherwise a
    ``file://`` URI.
    """

    def __init__(self, directory: Path = config.OBJECTS_DIR, base_url: Optional[str] = None):
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/") if base_url else None
        self._objects: Dict[str, ObjectUrl] = {}
        self._lock = Lock()

    def create(self, data: bytes, mime_type: str) -> ObjectUrl:
        self.directory.mkdir(parents=True, exist_ok=True)
        token = secrets.token_urlsafe(16)
        base_type = mime_type.split(";")[0].strip()
        suffix = _EXTENSIONS.get(base_type) or mimetypes.guess_extension(base_type) or ".bin"
        path = self.directory / f"{token}{suffix}"
        path.write_bytes(data)

        if self.base_url:
            url = f"{self.base_url}/objects/{token}"
        else:
            url = path.resolve().as_uri()

        obj = ObjectUrl(token=token, path=path, mime_type=mime_type, url=url)
        with self._lock:
            self._objects[token] = obj
        return obj

    def resolve(self, token: str) -> Optional[ObjectUrl]:
        with self._lock:
            return self._objects.get(token)

    def revoke(self, obj: ObjectUrl | str) -> None:
        token = obj.token if isinstance(obj, ObjectUrl) else obj
        with self._lock:
            removed = self._objects.pop(token, None)
        if removed is not None:
            removed.path.unlink(missing_ok=True)

    def revoke_all(self) -> None:
        with self._lock:
            tokens = list(self._objects)
        for token in tokens:
            self.revoke(token)
        if self.directory.exists() and not any(self.directory.iterdir()):
            shutil.rmtree(self.directory, ignore_errors=True)

    def __len__(self) -> int:
        return len(self._objects)
