"""Utility helpers for filesystem preparation."""

import shutil
from pathlib import Path

from . import config


def _reset_directory(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def setup_runtime_directories() -> None:
    """Ensure runtime directories exist; temp data from earlier runs is dropped.

    The video cache is persistent and is never cleared here.
    """
    _reset_directory(config.TEMP_DIR)
    config.RECORDINGS_DIR.mkdir(parents=True, exist_ok=True)
    config.OBJECTS_DIR.mkdir(parents=True, exist_ok=True)
    config.VIDEO_CACHE_DIR.mkdir(parents=True, exist_ok=True)


def cleanup_temp_directories() -> None:
    if config.TEMP_DIR.exists():
        shutil.rmtree(config.TEMP_DIR)
