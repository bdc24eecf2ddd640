"""Resolve repository references to archive URLs with the GitHub GraphQL API."""

from __future__ import annotations

import json
import logging
import ssl
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import truststore

from scafalra import __version__
from scafalra.errors import ApiError, NoTokenError
from scafalra.reference import RefSelector, RefSpec, SelectorKind

DEFAULT_ENDPOINT = "https://api.github.com/graphql"

ARCHIVE_FIELDS = {"tar": "tarballUrl", "zip": "zipballUrl"}

_REPO_QUERY = """\
query ($name: String!, $owner: String!, $expression: String, $oid: GitObjectID, $isDefaultBranch: Boolean!) {
  repository(name: $name, owner: $owner) {
    url
    defaultBranchRef {
      target {
        ... on Commit {
          oid
          archiveUrl: %(field)s
        }
      }
    }
    object(expression: $expression, oid: $oid) @skip(if: $isDefaultBranch) {
      ... on Commit {
        oid
        archiveUrl: %(field)s
      }
    }
  }
}
"""


def build_http_client() -> httpx.Client:
    """Return an httpx client that trusts the system certificate store."""
    ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    return httpx.Client(verify=ssl_context, follow_redirects=True)


@dataclass(frozen=True)
class RemoteMetadata:
    url: str
    archive_url: str
    oid: Optional[str] = None


def build_variables(ref: RefSpec, selector: RefSelector | None = None) -> dict[str, Any]:
    """Map a reference (and an optional selector override) to query variables."""
    selector = selector or ref.selector
    expression: str | None = None
    oid: str | None = None
    if selector is not None:
        if selector.kind is SelectorKind.BRANCH:
            expression = f"refs/heads/{selector.value}"
        elif selector.kind is SelectorKind.TAG:
            expression = f"refs/tags/{selector.value}"
        else:
            oid = selector.value

    variables: dict[str, Any] = {"name": ref.name, "owner": ref.owner}
    if expression is not None:
        variables["expression"] = expression
    if oid is not None:
        variables["oid"] = oid
    variables["isDefaultBranch"] = expression is None and oid is None
    return variables


def build_query(archive_format: str = "tar") -> str:
    try:
        field = ARCHIVE_FIELDS[archive_format]
    except KeyError as exc:
        raise ValueError(f"Unknown archive format: {archive_format!r}") from exc
    return _REPO_QUERY % {"field": field}


class GitHubApi:
    """Single-request metadata resolver for a :class:`RefSpec`."""

    def __init__(
        self,
        token: str | None = None,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        archive_format: str = "tar",
        client: httpx.Client | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.token = token
        self.endpoint = endpoint
        self.archive_format = archive_format
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

    def resolve(self, ref: RefSpec, selector: RefSelector | None = None) -> RemoteMetadata:
        """Resolve ``ref`` to its canonical URL, archive URL and commit id.

        Raises:
            NoTokenError: If no token is configured (no request is made).
            ApiError: On transport, HTTP or GraphQL failure.
        """
        if not self.token:
            raise NoTokenError()

        selector = selector or ref.selector
        variables = build_variables(ref, selector)
        self._logger.debug("GraphQL variables: %s", json.dumps(variables))

        data = self._request(build_query(self.archive_format), variables)

        try:
            repository = data["repository"]
            url = repository["url"]
            if selector is None:
                target = repository["defaultBranchRef"]["target"]
            else:
                target = repository.get("object")
                if not target:
                    raise ApiError(f"Could not resolve {selector.kind.value} '{selector.value}'")
            archive_url = target["archiveUrl"]
        except (KeyError, TypeError) as exc:
            raise ApiError(f"Unexpected response shape: {exc}") from exc

        return RemoteMetadata(url=url, archive_url=archive_url, oid=target.get("oid"))

    def _request(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"bearer {self.token}",
            "Content-Type": "application/json",
            "User-Agent": f"scafalra/{__version__}",
        }
        try:
            response = self.client.post(
                self.endpoint,
                json={"query": query, "variables": variables},
                headers=headers,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ApiError(f"GitHub API returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ApiError(str(exc)) from exc
        except ValueError as exc:
            raise ApiError(f"Failed to parse response JSON: {exc}") from exc

        self._logger.debug("GraphQL response: %s", payload)

        if not isinstance(payload, dict):
            raise ApiError("Malformed response body")
        errors = payload.get("errors")
        if errors is not None:
            first = errors[0] if isinstance(errors, list) and errors else None
            message = first.get("message") if isinstance(first, dict) else None
            raise ApiError(message)
        data = payload.get("data")
        if not isinstance(data, dict):
            raise ApiError("No response data")
        return data
