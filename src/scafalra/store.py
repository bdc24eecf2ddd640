"""Persistent name -> template index backed by ``store.json``."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from rich.console import Console
from rich.markup import escape

from scafalra.errors import CacheIOError
from scafalra.fs_utils import remove_tree
from scafalra.jsonfile import load_json, save_json
from scafalra.template import Template

STORE_FILE_NAME = "store.json"
SIMILARITY_THRESHOLD = 0.5

ADD = "+"
REMOVE = "-"

_TemplateMap = Dict[str, Template]


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def normalized_levenshtein(a: str, b: str) -> float:
    """Similarity in [0, 1]; 1.0 means identical."""
    if not a and not b:
        return 1.0
    return 1.0 - levenshtein(a, b) / max(len(a), len(b))


class TemplateStore:
    """Name-sorted map of templates with a human readable changelog.

    Mutations are kept in memory until :meth:`save` writes the file and
    prints the changelog.
    """

    def __init__(
        self,
        path: Path,
        *,
        console: Console | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.path = path
        self.console = console or Console(highlight=False)
        self._logger = logger or logging.getLogger(__name__)
        self._templates: _TemplateMap = load_json(path, _TemplateMap, dict)
        self.changes: List[str] = []

    @classmethod
    def in_dir(cls, data_dir: Path, **kwargs) -> "TemplateStore":
        return cls(data_dir / STORE_FILE_NAME, **kwargs)

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[Template]:
        return iter(self.templates())

    def names(self) -> List[str]:
        return sorted(self._templates)

    def templates(self) -> List[Template]:
        return [self._templates[name] for name in self.names()]

    def get(self, name: str) -> Optional[Template]:
        return self._templates.get(name)

    def add(self, template: Template) -> Optional[Template]:
        """Insert ``template``, replacing an entry with the same name.

        The replaced entry is returned; its directory is left on disk.
        """
        previous = self._templates.get(template.name)
        if previous is not None:
            self.changes.append(f"{REMOVE} {template.name}")
        self.changes.append(f"{ADD} {template.name}")
        self._templates[template.name] = template
        return previous

    def remove(self, name: str) -> bool:
        """Delete a template and its directory.

        Removing an unknown name is a no-op and returns False.

        Raises:
            CacheIOError: If the directory exists but cannot be deleted.
        """
        template = self._templates.get(name)
        if template is None:
            self._logger.info("Template %s not found, nothing to remove", name)
            return False

        try:
            if not remove_tree(template.path):
                self._logger.debug("Directory of %s already gone: %s", name, template.path)
        except OSError as exc:
            raise CacheIOError(f"Failed to remove {template.path}: {exc}") from exc

        del self._templates[name]
        self.changes.append(f"{REMOVE} {name}")
        return True

    def rename(self, name: str, new_name: str) -> bool:
        """Move an entry to a new key; path and content stay unchanged."""
        if name == new_name:
            return name in self._templates
        if new_name in self._templates:
            self.console.print(f'"{escape(new_name)}" already exists')
            return False
        template = self._templates.pop(name, None)
        if template is None:
            self.console.print(f'"{escape(name)}" not found')
            return False

        self._templates[new_name] = template.model_copy(update={"name": new_name})
        self.changes.append(f"{REMOVE} {name}")
        self.changes.append(f"{ADD} {new_name}")
        return True

    def get_similar_name(self, target: str) -> Optional[str]:
        best_name: Optional[str] = None
        best_score = SIMILARITY_THRESHOLD
        for name in self.names():
            score = normalized_levenshtein(target, name)
            if score > best_score:
                best_name, best_score = name, score
        return best_name

    def save(self) -> None:
        ordered = {name: self._templates[name] for name in self.names()}
        save_json(self.path, ordered, _TemplateMap)
        self._logger.debug("Saved %d templates to %s", len(ordered), self.path)

        for change in self.changes:
            color = "green" if change.startswith(ADD) else "red"
            symbol, _, rest = change.partition(" ")
            self.console.print(f"[{color}]{symbol}[/{color}] {escape(rest)}")
        self.changes.clear()
