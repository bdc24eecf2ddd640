"""Typed JSON files that are created with a default value on first use.

Each owning component calls :func:`load_json` / :func:`save_json` with the
concrete type it persists, so the data types themselves stay plain models.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, TypeVar

from pydantic import TypeAdapter, ValidationError

from scafalra.errors import StoreFileError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def load_json(path: Path, type_: Any, default: Callable[[], T]) -> T:
    """Load ``path`` as ``type_``, writing ``default()`` when it is missing.

    An existing but empty file is treated like a missing one.

    Raises:
        StoreFileError: If the file cannot be read or does not validate.
    """
    adapter: TypeAdapter[T] = TypeAdapter(type_)
    try:
        raw = path.read_text(encoding="utf-8") if path.exists() else ""
    except OSError as exc:
        raise StoreFileError(f"Failed to read {path}: {exc}") from exc

    if not raw.strip():
        value = default()
        logger.debug("Initializing %s", path)
        save_json(path, value, type_)
        return value

    try:
        return adapter.validate_json(raw)
    except ValidationError as exc:
        raise StoreFileError(f"Malformed content in {path}: {exc}") from exc


def save_json(path: Path, value: T, type_: Any) -> None:
    """Write ``value`` to ``path`` as pretty-printed JSON."""
    adapter: TypeAdapter[T] = TypeAdapter(type_)
    payload = adapter.dump_json(value, indent=2, by_alias=True)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload + b"\n")
    except OSError as exc:
        raise StoreFileError(f"Failed to write {path}: {exc}") from exc
