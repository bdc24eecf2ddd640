"""Template entries persisted by the template store."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field

SCAFALRA_DIR = ".scafalra"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class SubTemplate(BaseModel):
    name: str
    path: Path


def read_sub_templates(template_path: Path) -> List[SubTemplate]:
    """List the sub-templates kept in ``<template_path>/.scafalra/``.

    Every non-hidden directory in that folder is a sub-template.
    """
    folder = template_path / SCAFALRA_DIR
    if not folder.is_dir():
        return []
    return [
        SubTemplate(name=entry.name, path=entry)
        for entry in sorted(folder.iterdir())
        if entry.is_dir() and not entry.name.startswith(".")
    ]


class Template(BaseModel):
    """A named cached copy of a repository subtree."""

    name: str
    url: str
    path: Path
    created_at: str
    sub_templates: List[SubTemplate] = Field(default_factory=list)
    is_sub_template: bool = False

    @classmethod
    def build(cls, name: str, url: str, path: Path, *, is_sub_template: bool = False) -> "Template":
        return cls(
            name=name,
            url=url,
            path=path.absolute(),
            created_at=datetime.now().strftime(TIMESTAMP_FORMAT),
            sub_templates=read_sub_templates(path),
            is_sub_template=is_sub_template,
        )

    @property
    def sibling_context(self) -> Path:
        """Directory whose ``.scafalra/`` folder feeds copy-on-create."""
        return self.path.parent if self.is_sub_template else self.path
