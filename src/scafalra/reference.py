"""Parsing of ``owner/name[/sub/dir...][?(branch|tag|commit)=value]`` references."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from scafalra.errors import ParseError
from scafalra.fs_utils import split_path

_REFERENCE_RE = re.compile(
    r"^(?P<owner>[^/\s]+)/(?P<name>[^/\s?]+)"
    r"(?P<subdir>(?:/[^/\s?]+)+)?"
    r"(?:\?(?P<kind>[^=]+)=(?P<value>.+))?$"
)


class SelectorKind(str, Enum):
    BRANCH = "branch"
    TAG = "tag"
    COMMIT = "commit"


@dataclass(frozen=True)
class RefSelector:
    kind: SelectorKind
    value: str

    @classmethod
    def create(cls, kind: str | SelectorKind, value: str) -> "RefSelector":
        """Build a selector, validating the kind and the value."""
        try:
            selector_kind = SelectorKind(kind)
        except ValueError as exc:
            raise ValueError(f"Unknown ref kind: {kind!r}") from exc
        if not value or not value.strip():
            raise ValueError(f"Empty {selector_kind.value} value")
        return cls(selector_kind, value)


@dataclass(frozen=True)
class RefSpec:
    owner: str
    name: str
    subdir: Optional[str] = None
    selector: Optional[RefSelector] = None

    def subdir_segments(self) -> list[str]:
        return split_path(self.subdir) if self.subdir else []

    @property
    def template_name(self) -> str:
        """Default template name: the last subdir segment, else the repo name."""
        segments = self.subdir_segments()
        return segments[-1] if segments else self.name


def parse_reference(text: str) -> RefSpec:
    """Parse a repository reference.

    Examples:
        ``foo/bar`` -> owner ``foo``, name ``bar``
        ``foo/bar/a/b?tag=v1`` -> subdir ``/a/b``, selector tag ``v1``

    Raises:
        ParseError: On any grammar violation.
    """
    match = _REFERENCE_RE.match(text)
    if match is None:
        raise ParseError(text)

    selector = None
    kind = match.group("kind")
    if kind is not None:
        try:
            selector = RefSelector.create(kind, match.group("value"))
        except ValueError as exc:
            raise ParseError(text) from exc

    return RefSpec(
        owner=match.group("owner"),
        name=match.group("name"),
        subdir=match.group("subdir"),
        selector=selector,
    )


def is_reference(text: str) -> bool:
    try:
        parse_reference(text)
    except ParseError:
        return False
    return True
