"""The scafalra pipeline: reference -> metadata -> archive -> cache -> store."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import httpx
from rich.console import Console

from scafalra.archive import Cache, default_archive_format
from scafalra.config import CACHE_DIR_NAME, UserConfig, get_scafalra_home
from scafalra.errors import CacheIOError, DestinationExistsError, TemplateNotFoundError
from scafalra.fs_utils import is_within, remove_tree
from scafalra.github_api import DEFAULT_ENDPOINT, GitHubApi
from scafalra.reference import RefSelector, is_reference, parse_reference
from scafalra.repository_config import CrossTemplateLinker
from scafalra.store import REMOVE, TemplateStore
from scafalra.template import SCAFALRA_DIR, Template


class Scafalra:
    """Wire the acquisition pipeline to the template store.

    Every collaborator (HTTP client, console, logger) is injectable so the
    whole pipeline runs against a temporary home in tests.
    """

    def __init__(
        self,
        home: Path | None = None,
        *,
        token: str | None = None,
        endpoint: str = DEFAULT_ENDPOINT,
        archive_format: str | None = None,
        client: httpx.Client | None = None,
        console: Console | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.root_dir = home or get_scafalra_home()
        self.cache_dir = self.root_dir / CACHE_DIR_NAME
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.console = console or Console(highlight=False)
        self._logger = logger or logging.getLogger(__name__)
        self.config = UserConfig.in_dir(self.root_dir)
        self.store = TemplateStore.in_dir(self.root_dir, console=self.console, logger=self._logger)
        self._explicit_token = token
        self.github_api = GitHubApi(
            self.config.resolve_token(token),
            endpoint=endpoint,
            archive_format=archive_format or default_archive_format(),
            client=client,
            logger=self._logger,
        )
        self.cache = Cache(self.cache_dir, client=client, logger=self._logger)
        self.linker = CrossTemplateLinker(logger=self._logger)

    def __enter__(self) -> "Scafalra":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP clients built on demand; an injected client is left open."""
        self.github_api.close()
        self.cache.fetcher.close()

    def add(
        self,
        reference: str,
        *,
        depth: int = 0,
        name: str | None = None,
        selector: RefSelector | None = None,
    ) -> List[Template]:
        """Fetch ``reference`` into the cache and register it.

        Depth 0 registers the fetched tree (or subdir) as one template; depth 1
        registers each immediate non-hidden child directory.
        """
        if depth not in (0, 1):
            raise ValueError(f"depth must be 0 or 1, got {depth}")

        ref = parse_reference(reference)
        with self.console.status("Downloading..."):
            metadata = self.github_api.resolve(ref, selector)
            path = self.cache.cache(ref, metadata.archive_url)
        self._logger.debug("Cached %s at %s (commit %s)", reference, path, metadata.oid)

        if depth == 0:
            added = [Template.build(name or ref.template_name, metadata.url, path)]
        else:
            added = [
                Template.build(child.name, metadata.url, child, is_sub_template=True)
                for child in sorted(path.iterdir())
                if child.is_dir() and not child.name.startswith(".")
            ]

            # copyOnAdd only targets templates registered before this fetch
            self.linker.copy_on_add(path, self.store)

        replaced: List[Tuple[Template, Template]] = []
        for template in added:
            previous = self.store.add(template)
            if previous is not None:
                replaced.append((previous, template))

        for previous, current in replaced:
            self._collect_superseded(previous, current)

        self.store.save()
        return added

    def _collect_superseded(self, previous: Template, current: Template) -> None:
        old = previous.path
        if not old.exists() or not is_within(old, self.cache_dir):
            return
        # never delete a directory that overlaps a live template, the new one included
        for template in self.store.templates():
            if is_within(template.path, old) or is_within(old, template.path):
                return
        try:
            remove_tree(old)
        except OSError as exc:
            self._logger.warning("Failed to remove superseded directory %s: %s", old, exc)
            return
        self.store.changes.append(f"{REMOVE} {previous.name} (old)")

    def remove(self, names: Iterable[str]) -> List[str]:
        """Remove templates; returns the names that were not found."""
        missing = [name for name in dict.fromkeys(names) if not self.store.remove(name)]
        self.store.save()
        return missing

    def rename(self, name: str, new_name: str) -> bool:
        if name == new_name:
            return True
        renamed = self.store.rename(name, new_name)
        if renamed:
            self.store.save()
        return renamed

    def create(
        self,
        name: str,
        directory: str | Path | None = None,
        *,
        with_globs: str | None = None,
        cwd: Path | None = None,
    ) -> Path:
        """Materialize a template, or a bare repository reference, into a directory.

        Raises:
            TemplateNotFoundError: If ``name`` is neither a template nor a reference.
            DestinationExistsError: If the destination already exists.
        """
        cwd = cwd or Path.cwd()
        template = self.store.get(name)

        if template is not None:
            destination = _destination(cwd, directory, name)
            if not template.path.is_dir():
                raise CacheIOError(
                    f"Directory of '{name}' is missing: {template.path}. Add the template again."
                )
            try:
                shutil.copytree(
                    template.path,
                    destination,
                    symlinks=True,
                    ignore=shutil.ignore_patterns(SCAFALRA_DIR),
                )
            except OSError as exc:
                raise CacheIOError(f"Failed to create {destination}: {exc}") from exc
            self.linker.copy_on_create(template, destination, with_globs)
            return destination

        if is_reference(name):
            ref = parse_reference(name)
            destination = _destination(cwd, directory, ref.template_name)
            with self.console.status("Downloading..."):
                metadata = self.github_api.resolve(ref)
                return self.cache.export(ref, metadata.archive_url, destination)

        raise TemplateNotFoundError(name, self.store.get_similar_name(name))

    def token(self, value: str | None = None) -> Optional[str]:
        """Persist ``value`` as the GitHub token, or return the stored one."""
        if value:
            self.config.token = value
            self.config.save()
            self.github_api.token = self.config.resolve_token(self._explicit_token)
        return self.config.token


def _destination(cwd: Path, directory: str | Path | None, default_name: str) -> Path:
    destination = Path(directory) if directory else Path(default_name)
    if not destination.is_absolute():
        destination = cwd / destination
    if destination.exists():
        raise DestinationExistsError(destination)
    return destination
