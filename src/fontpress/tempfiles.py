"""Per-job temporary directories and fault-tolerant removal."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class PathOwner(Protocol):
    """Anything that takes responsibility for deleting a temp path later."""

    def adopt(self, path: Path) -> None: ...


def make_temp_dir(prefix: str, parent: str | None = None, owner: PathOwner | None = None) -> Path:
    """Create a uniquely named directory and hand it to ``owner`` at once."""
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
    if owner is not None:
        owner.adopt(path)
    return path


def remove_path(path: Path) -> bool:
    """Delete a file or directory tree. Returns False and logs on failure."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            os.unlink(path)
    except OSError as e:
        logger.warning("Failed to remove temporary path %s: %s", path, e)
        return False
    return True


def remove_paths(paths: list[Path]) -> list[Path]:
    """Try to delete every path independently; return the ones left behind.

    Files are removed before directories so a file inside an owned
    directory is not reported twice.
    """
    leftover = []
    for path in sorted(paths, key=lambda p: p.is_dir()):
        if not remove_path(path):
            leftover.append(path)
    return leftover


class TempScope:
    """Collects temp paths and removes them all on exit.

    Usable as a context manager for callers outside the request pipeline,
    such as the CLI.
    """

    def __init__(self):
        self.paths: list[Path] = []

    def adopt(self, path: Path) -> None:
        self.paths.append(Path(path))

    def cleanup(self) -> list[Path]:
        leftover = remove_paths(self.paths)
        self.paths = leftover
        return leftover

    def __enter__(self) -> TempScope:
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()
