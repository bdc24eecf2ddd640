from __future__ import annotations

import io
import json
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from rich.console import Console

WRAPPER = "foo-bar-ea7c165"
REPO_URL = "https://github.com/foo/bar"
OID = "ea7c165bac336140bcf08f84758ab752769799be"

DEFAULT_TREE: Dict[str, str] = {
    "README.md": "# bar\n",
    "a/a1/index.js": "a1\n",
    "a/a2/index.js": "a2\n",
    "a/a3/index.js": "a3\n",
    "b/index.js": "b\n",
    "c/index.js": "c\n",
    "node_modules/pkg/index.js": "pkg\n",
    ".github/workflows/ci.yml": "on: push\n",
}


def build_tarball(
    files: Dict[str, str],
    wrapper: str = WRAPPER,
    symlinks: Optional[Dict[str, str]] = None,
) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for rel_path, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"{wrapper}/{rel_path}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
        for rel_path, link_target in (symlinks or {}).items():
            info = tarfile.TarInfo(f"{wrapper}/{rel_path}")
            info.type = tarfile.SYMTYPE
            info.linkname = link_target
            tar.addfile(info)
    return buffer.getvalue()


def build_zipball(files: Dict[str, str], wrapper: str = WRAPPER) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zip_ref:
        for rel_path, content in files.items():
            zip_ref.writestr(f"{wrapper}/{rel_path}", content)
    return buffer.getvalue()


def repo_response(archive_url: str, *, url: str = REPO_URL, with_object: bool = False) -> dict:
    target = {"oid": OID, "archiveUrl": archive_url}
    repository = {"url": url, "defaultBranchRef": {"target": target}}
    if with_object:
        repository["object"] = {"oid": "1" * 40, "archiveUrl": f"{archive_url}?ref=selected"}
    return {"data": {"repository": repository}}


class FakeGitHub:
    """In-memory GraphQL endpoint and archive host for httpx.MockTransport."""

    endpoint = "https://api.test/graphql"
    archive_url = "https://codeload.test/tarball"

    def __init__(self) -> None:
        self.archive = build_tarball(DEFAULT_TREE)
        self.graphql_payload: dict = repo_response(self.archive_url)
        self.graphql_status = 200
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return httpx.Response(self.graphql_status, json=self.graphql_payload)
        if str(request.url).startswith(self.archive_url):
            return httpx.Response(200, content=self.archive)
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def graphql_bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), highlight=False, width=200)


@pytest.fixture
def console_output(console: Console) -> Callable[[], str]:
    return lambda: console.file.getvalue()


@pytest.fixture
def sca_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / ".scafalra"
    monkeypatch.setenv("SCAFALRA_HOME", str(home))
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    return home


@pytest.fixture
def make_scafalra(sca_home: Path, fake_github: FakeGitHub, console: Console):
    from scafalra.core import Scafalra

    def factory(token: str | None = "token", **kwargs) -> Scafalra:
        return Scafalra(
            sca_home,
            token=token,
            endpoint=fake_github.endpoint,
            archive_format="tar",
            client=fake_github.client(),
            console=console,
            **kwargs,
        )

    return factory
