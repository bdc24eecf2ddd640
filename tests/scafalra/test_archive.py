"""Tests for archive download and cache materialization."""

from __future__ import annotations

import io
import os
import sys
import tarfile
from pathlib import Path

import httpx
import pytest

from conftest import DEFAULT_TREE, build_tarball, build_zipball
from scafalra.archive import ArchiveFetcher, Cache, CacheMaterializer, content_root
from scafalra.errors import ApiError, CacheIOError, EmptyArchiveError
from scafalra.reference import parse_reference


def _write(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def _fetcher(cache_root: Path, handler) -> ArchiveFetcher:
    return ArchiveFetcher(cache_root, client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestArchiveFetcher:
    def test_fetch_writes_fixed_scratch_file(self, tmp_path: Path) -> None:
        fetcher = _fetcher(tmp_path, lambda request: httpx.Response(200, content=b"payload"))

        first = fetcher.fetch("https://archive/one")
        assert first == tmp_path / ".download"
        assert first.read_bytes() == b"payload"

        second = fetcher.fetch("https://archive/two")
        assert second == first

    def test_fetch_http_error_is_api_error(self, tmp_path: Path) -> None:
        fetcher = _fetcher(tmp_path, lambda request: httpx.Response(404))

        with pytest.raises(ApiError, match="404"):
            fetcher.fetch("https://archive/missing")

    def test_fetch_transport_error_is_api_error(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ApiError):
            _fetcher(tmp_path, handler).fetch("https://archive/slow")


class TestCacheMaterializer:
    def test_strips_wrapper_and_copies_to_owner_name(self, tmp_path: Path) -> None:
        archive = _write(tmp_path / ".download", build_tarball(DEFAULT_TREE))

        result = CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar"))

        assert result == tmp_path / "foo" / "bar"
        assert (result / "README.md").read_text() == "# bar\n"
        assert (result / "a" / "a1" / "index.js").exists()
        assert not (result / "foo-bar-ea7c165").exists()

    def test_removes_scratch_files(self, tmp_path: Path) -> None:
        archive = _write(tmp_path / ".download", build_tarball(DEFAULT_TREE))

        CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar"))

        assert not archive.exists()
        assert not (tmp_path / ".extract").exists()

    def test_descends_into_subdir(self, tmp_path: Path) -> None:
        archive = _write(tmp_path / ".download", build_tarball(DEFAULT_TREE))

        result = CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar/a/a1"))

        assert result == tmp_path / "foo" / "bar" / "a" / "a1"
        assert (result / "index.js").read_text() == "a1\n"

    def test_replaces_previous_occupant(self, tmp_path: Path) -> None:
        stale = tmp_path / "foo" / "bar" / "stale.txt"
        _write(stale, b"old")
        archive = _write(tmp_path / ".download", build_tarball({"new.txt": "new"}))

        result = CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar"))

        assert not stale.exists()
        assert (result / "new.txt").read_text() == "new"

    def test_missing_subdir_keeps_existing_cache(self, tmp_path: Path) -> None:
        kept = _write(tmp_path / "foo" / "bar" / "kept.txt", b"kept")
        archive = _write(tmp_path / ".download", build_tarball(DEFAULT_TREE))

        with pytest.raises(CacheIOError, match="No such directory"):
            CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar/nope"))

        assert kept.exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need extra privileges on Windows")
    def test_keeps_symlinks_as_links(self, tmp_path: Path) -> None:
        tarball = build_tarball(
            {"README.md": "hi", "a/index.js": "a"},
            symlinks={"dangling": "missing.txt", "alias": "a"},
        )
        archive = _write(tmp_path / ".download", tarball)

        result = CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar"))

        assert (result / "README.md").read_text() == "hi"
        assert (result / "dangling").is_symlink()
        assert os.readlink(result / "dangling") == "missing.txt"
        assert (result / "alias").is_symlink()
        assert os.readlink(result / "alias") == "a"

    def test_zip_archive(self, tmp_path: Path) -> None:
        archive = _write(tmp_path / ".download", build_zipball(DEFAULT_TREE))

        result = CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar"))

        assert (result / "b" / "index.js").read_text() == "b\n"

    def test_empty_archive(self, tmp_path: Path) -> None:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz"):
            pass
        archive = _write(tmp_path / ".download", buffer.getvalue())

        with pytest.raises(EmptyArchiveError):
            CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar"))

    def test_unknown_format(self, tmp_path: Path) -> None:
        archive = _write(tmp_path / ".download", b"definitely not an archive")

        with pytest.raises(CacheIOError, match="Unsupported archive format"):
            CacheMaterializer(tmp_path).materialize(archive, parse_reference("foo/bar"))


def test_content_root_without_wrapper(tmp_path: Path) -> None:
    (tmp_path / "one.txt").write_text("1")
    (tmp_path / "two").mkdir()

    assert content_root(tmp_path) == tmp_path


def test_cache_export_copies_only_subtree(tmp_path: Path) -> None:
    client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=build_tarball(DEFAULT_TREE)))
    )
    cache = Cache(tmp_path / "cache", client=client)

    destination = cache.export(parse_reference("foo/bar/a"), "https://archive", tmp_path / "project")

    assert sorted(p.name for p in destination.iterdir()) == ["a1", "a2", "a3"]
    assert not (tmp_path / "cache" / "foo").exists()
