"""
Byte storage backends.

Contract:
- read(path) -> bytes, raises StorageNotFound if the file is missing
- write(path, data) -> True, raises StorageNotFound if the parent
  directory is missing, StorageError for anything else
- make_dirs(path) creates the parent directory chain
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict

from .errors import StorageError, StorageNotFound

logger = logging.getLogger(__name__)


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


class FileStorage:
    """Local filesystem backend. Writes go through a temp file + os.replace."""

    def read(self, path: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise StorageNotFound(f"No cache file at {path}", path=path) from e
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}", path=path) from e

    def write(self, path: str, data: bytes) -> bool:
        directory = os.path.dirname(path) or "."
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
            )
        except FileNotFoundError as e:
            raise StorageNotFound(f"Directory {directory} does not exist", path=path) from e
        except OSError as e:
            raise StorageError(f"Cannot write {path}: {e}", path=path) from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            # mkstemp creates 0600; give the file the mode a plain open() would
            os.chmod(tmp_path, 0o666 & ~_current_umask())
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise StorageError(f"Cannot write {path}: {e}", path=path) from e

        logger.debug(f"Wrote {len(data)} bytes to {path}")
        return True

    def make_dirs(self, path: str) -> None:
        parent = Path(path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create directory {parent}: {e}", path=path) from e
        logger.debug(f"Created directory {parent}")


class MemoryStorage:
    """In-process backend with the same contract. Handy for tests."""

    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.dirs = set()
        self.writes = 0

    def read(self, path: str) -> bytes:
        if path not in self.files:
            raise StorageNotFound(f"No cache file at {path}", path=path)
        return self.files[path]

    def write(self, path: str, data: bytes) -> bool:
        parent = os.path.dirname(path)
        if parent and parent not in self.dirs:
            raise StorageNotFound(f"Directory {parent} does not exist", path=path)
        self.files[path] = bytes(data)
        self.writes += 1
        return True

    def make_dirs(self, path: str) -> None:
        parent = os.path.dirname(path)
        while parent and parent not in self.dirs:
            self.dirs.add(parent)
            parent = os.path.dirname(parent) if os.path.dirname(parent) != parent else ""
