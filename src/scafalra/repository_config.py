"""Cross-template file linking driven by ``.scafalra/scafalra.json``.

A repository registered with depth 1 can ship shared files in its
``.scafalra/`` folder. The manifest maps existing template names to glob
patterns (``copyOnAdd``); matched files are copied into those templates when
the repository is added. ``sca create --with`` applies the same mechanism
when a project is created from a template.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from scafalra.fs_utils import copy_tree, is_within
from scafalra.template import SCAFALRA_DIR, Template

CONFIG_FILE_NAME = "scafalra.json"

logger = logging.getLogger(__name__)


class RepositoryConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    copy_on_add: Dict[str, List[str]] = Field(default_factory=dict, alias="copyOnAdd")

    @staticmethod
    def path_in(tree: Path) -> Path:
        return tree / SCAFALRA_DIR / CONFIG_FILE_NAME

    @classmethod
    def load(cls, tree: Path, *, log: logging.Logger | None = None) -> "RepositoryConfig":
        """Load the manifest of ``tree``; a missing or bad file yields an empty config."""
        log = log or logger
        path = cls.path_in(tree)
        try:
            return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            log.debug("No repository config at %s", path)
        except (OSError, ValueError, ValidationError) as exc:
            log.debug("Ignoring repository config %s: %s", path, exc)
        return cls()


def parse_globs(raw: str | None) -> List[str]:
    """Split a comma separated ``--with`` value into patterns."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class CrossTemplateLinker:
    """Copy glob-matched files between related templates.

    Errors never propagate: a bad pattern or an unreadable file only produces
    a debug record.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def copy_matches(self, source_root: Path, patterns: Iterable[str], destination: Path) -> List[Path]:
        """Copy every match of ``patterns`` under ``source_root`` into ``destination``.

        Matches keep their path relative to ``source_root``.
        """
        copied: List[Path] = []
        if not source_root.is_dir():
            self._logger.debug("Nothing to copy, %s is not a directory", source_root)
            return copied

        for pattern in patterns:
            try:
                matches = sorted(source_root.glob(pattern))
            except (ValueError, NotImplementedError, OSError) as exc:
                self._logger.debug("Invalid glob %r: %s", pattern, exc)
                continue
            for match in matches:
                if not is_within(match, source_root):
                    self._logger.debug("Skipping %s, it is outside %s", match, source_root)
                    continue
                try:
                    target = destination / match.relative_to(source_root)
                    if not is_within(target, destination):
                        self._logger.debug("Skipping %s, it would land outside %s", match, destination)
                        continue
                    copy_tree(match, target)
                except (ValueError, OSError) as exc:
                    self._logger.debug("Failed to copy %s into %s: %s", match, destination, exc)
                    continue
                copied.append(target)
        return copied

    def copy_on_add(self, tree: Path, store) -> List[Path]:
        """Feed templates named in the manifest of ``tree`` that exist in ``store``."""
        config = RepositoryConfig.load(tree, log=self._logger)
        source_root = tree / SCAFALRA_DIR
        copied: List[Path] = []
        for name, patterns in config.copy_on_add.items():
            template = store.get(name)
            if template is None:
                self._logger.debug("copyOnAdd target %s is not in the store", name)
                continue
            copied.extend(self.copy_matches(source_root, patterns, template.path))
        return copied

    def copy_on_create(self, template: Template, destination: Path, globs: str | None) -> List[Path]:
        patterns = parse_globs(globs)
        if not patterns:
            return []
        source_root = template.sibling_context / SCAFALRA_DIR
        return self.copy_matches(source_root, patterns, destination)
