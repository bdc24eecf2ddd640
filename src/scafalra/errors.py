"""Exception taxonomy shared by every scafalra component."""

from __future__ import annotations


class ScafalraError(Exception):
    """Base class for all errors surfaced to the user."""


class ParseError(ScafalraError):
    """Raised when a repository reference does not match the grammar."""

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"Could not parse the input: '{text}'")


class NoTokenError(ScafalraError):
    """Raised before any network call when no GitHub token is configured."""

    def __init__(self) -> None:
        super().__init__(
            "No GitHub personal access token configured. "
            "Run 'sca token <TOKEN>' or set GH_TOKEN / GITHUB_TOKEN."
        )


class ApiError(ScafalraError):
    """Raised when the GitHub API or an archive download fails."""

    def __init__(self, message: str | None = None) -> None:
        self.message = message
        text = "Call to GitHub API failed"
        super().__init__(f"{text}: {message}" if message else text)


class CacheIOError(ScafalraError):
    """Raised when a filesystem operation on the cache fails."""


class EmptyArchiveError(CacheIOError):
    """Raised when an extracted archive contains no entries."""


class StoreFileError(ScafalraError):
    """Raised when a persisted JSON file cannot be read or written."""


class TemplateNotFoundError(ScafalraError):
    def __init__(self, name: str, suggestion: str | None = None) -> None:
        self.name = name
        self.suggestion = suggestion
        message = f"No such template: '{name}'"
        if suggestion:
            message += f", did you mean '{suggestion}'?"
        super().__init__(message)


class DestinationExistsError(ScafalraError):
    def __init__(self, path) -> None:
        self.path = path
        super().__init__(f"Destination already exists: '{path}'")
