"""Filesystem helpers used by the cache and the template store."""

from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath
from typing import Iterable


def split_path(raw: str) -> list[str]:
    """Split a slash separated path into normal segments.

    Empty segments, ``.``, ``..`` and root markers are dropped so the result
    can never climb out of the directory it is joined onto.
    """
    return [
        part
        for part in PurePosixPath(raw.replace("\\", "/")).parts
        if part not in ("/", ".", "..", "")
    ]


def join_segments(root: Path, segments: Iterable[str]) -> Path:
    path = root
    for segment in segments:
        path = path / segment
    return path


def copy_tree(source: Path, destination: Path) -> None:
    """Copy a file or a directory tree, overwriting what is already there.

    Symlinks are copied as links and never followed.
    """
    if source.is_dir() and not source.is_symlink():
        shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
    else:
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.is_symlink() or (source.is_symlink() and destination.exists()):
            remove_tree(destination)
        shutil.copy2(source, destination, follow_symlinks=False)


def remove_tree(path: Path) -> bool:
    """Delete ``path`` recursively. Returns False when it did not exist."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        return True
    return False


def is_within(path: Path, parent: Path) -> bool:
    """Return True when ``path`` equals ``parent`` or lives beneath it."""
    try:
        path.resolve().relative_to(parent.resolve())
    except ValueError:
        return False
    return True
