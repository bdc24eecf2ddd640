"""Download repository archives and normalize them into the local cache.

GitHub archives wrap the repository in one generated top-level directory
(``owner-name-<sha>/``). The materializer strips that wrapper and copies the
content into ``<cache_root>/<owner>/<name>``, replacing whatever was there.
Replacement is remove-then-copy and therefore not atomic.
"""

from __future__ import annotations

import logging
import shutil
import sys
import tarfile
import zipfile
from pathlib import Path

import httpx

from scafalra.errors import ApiError, CacheIOError, EmptyArchiveError
from scafalra.fs_utils import copy_tree, join_segments, remove_tree
from scafalra.github_api import build_http_client
from scafalra.reference import RefSpec

DOWNLOAD_FILE_NAME = ".download"
EXTRACT_DIR_NAME = ".extract"


def default_archive_format() -> str:
    return "zip" if sys.platform == "win32" else "tar"


class ArchiveFetcher:
    """Stream an archive URL into a fixed scratch file under the cache root."""

    def __init__(
        self,
        cache_root: Path,
        *,
        client: httpx.Client | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.cache_root = cache_root
        self._client = client
        self._owns_client = False
        self._logger = logger or logging.getLogger(__name__)

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = build_http_client()
            self._owns_client = True
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None
            self._owns_client = False

    @property
    def download_path(self) -> Path:
        return self.cache_root / DOWNLOAD_FILE_NAME

    def fetch(self, url: str, destination: Path | None = None) -> Path:
        """Download ``url`` and return the path of the written file.

        Raises:
            ApiError: On transport failure or a non-2xx response.
            CacheIOError: If the file cannot be written.
        """
        target = destination or self.download_path
        self._logger.debug("Downloading %s -> %s", url, target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with self.client.stream("GET", url, follow_redirects=True) as response:
                if response.status_code >= 300:
                    raise ApiError(f"Download failed with {response.status_code}: {url}")
                with open(target, "wb") as handle:
                    for chunk in response.iter_bytes(chunk_size=8192):
                        handle.write(chunk)
        except httpx.HTTPError as exc:
            raise ApiError(f"Download failed: {exc}") from exc
        except OSError as exc:
            raise CacheIOError(f"Failed to write {target}: {exc}") from exc
        return target


def extract_archive(archive: Path, destination: Path) -> None:
    """Extract a gzip-tar or zip archive into ``destination``.

    The format is sniffed from the content, not the file name.
    """
    if tarfile.is_tarfile(archive):
        with tarfile.open(archive, "r:*") as tar:
            tar.extractall(destination, filter="data")
    elif zipfile.is_zipfile(archive):
        with zipfile.ZipFile(archive) as zip_ref:
            zip_ref.extractall(destination)
    else:
        raise CacheIOError(f"Unsupported archive format: {archive}")


def content_root(extracted: Path) -> Path:
    """Return the real content root of an extracted archive.

    Raises:
        EmptyArchiveError: If nothing was extracted.
    """
    entries = sorted(extracted.iterdir())
    if not entries:
        raise EmptyArchiveError(f"Archive is empty: {extracted}")
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return extracted


class CacheMaterializer:
    """Turn a downloaded archive into a deterministic cache directory."""

    def __init__(self, cache_root: Path, *, logger: logging.Logger | None = None) -> None:
        self.cache_root = cache_root
        self._logger = logger or logging.getLogger(__name__)

    @property
    def extract_dir(self) -> Path:
        return self.cache_root / EXTRACT_DIR_NAME

    def destination_for(self, ref: RefSpec) -> Path:
        return self.cache_root / ref.owner / ref.name

    def materialize(self, archive: Path, ref: RefSpec) -> Path:
        """Extract ``archive`` into the cache slot of ``ref``.

        Returns the cache path, descended into the requested subdir.

        Raises:
            EmptyArchiveError: If the archive has no entries.
            CacheIOError: On any filesystem failure or a missing subdir.
        """
        destination = self.destination_for(ref)
        return self.materialize_to(archive, destination, ref.subdir_segments())

    def materialize_to(self, archive: Path, destination: Path, segments: list[str]) -> Path:
        extract_dir = self.extract_dir
        try:
            remove_tree(extract_dir)
            extract_dir.mkdir(parents=True)
            extract_archive(archive, extract_dir)
            root = content_root(extract_dir)
            source = join_segments(root, segments)
            if not source.is_dir():
                raise CacheIOError(f"No such directory: '{'/'.join(segments)}'")

            if destination.exists():
                self._logger.debug("Replacing %s", destination)
                remove_tree(destination)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(root, destination, symlinks=True)
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as exc:
            raise CacheIOError(f"Failed to cache archive: {exc}") from exc
        finally:
            self._cleanup(archive, extract_dir)

        return join_segments(destination, segments)

    def copy_subtree(self, archive: Path, destination: Path, segments: list[str]) -> Path:
        """Extract ``archive`` and copy only the requested subtree to ``destination``.

        Used for creating a project straight from a reference without caching it.
        """
        extract_dir = self.extract_dir
        try:
            remove_tree(extract_dir)
            extract_dir.mkdir(parents=True)
            extract_archive(archive, extract_dir)
            source = join_segments(content_root(extract_dir), segments)
            if not source.is_dir():
                raise CacheIOError(f"No such directory: '{'/'.join(segments)}'")
            copy_tree(source, destination)
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as exc:
            raise CacheIOError(f"Failed to extract archive: {exc}") from exc
        finally:
            self._cleanup(archive, extract_dir)
        return destination

    def _cleanup(self, archive: Path, extract_dir: Path) -> None:
        try:
            remove_tree(extract_dir)
            archive.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.debug("Failed to clean scratch files: %s", exc)


class Cache:
    """Fetch + materialize, the acquisition half of the pipeline."""

    def __init__(
        self,
        cache_root: Path,
        *,
        client: httpx.Client | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.root = cache_root
        self.fetcher = ArchiveFetcher(cache_root, client=client, logger=logger)
        self.materializer = CacheMaterializer(cache_root, logger=logger)

    def cache(self, ref: RefSpec, archive_url: str) -> Path:
        archive = self.fetcher.fetch(archive_url)
        return self.materializer.materialize(archive, ref)

    def export(self, ref: RefSpec, archive_url: str, destination: Path) -> Path:
        archive = self.fetcher.fetch(archive_url)
        return self.materializer.copy_subtree(archive, destination, ref.subdir_segments())
