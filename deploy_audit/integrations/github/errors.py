"""
GitHub API exceptions.
"""

from typing import Optional


class GitHubError(Exception):
    """Base exception for GitHub API failures."""

    def __init__(self, status_code: Optional[int], message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{status_code}] {message}")


class GitHubAuthError(GitHubError):
    """Raised when credentials are missing or rejected."""


class DataUnavailableError(GitHubError):
    """
    Raised when GitHub no longer has the requested data (404/410).

    Typically a deleted branch, force-pushed history or an expired retention
    window. Not worth retrying.
    """


class TransientGitHubError(GitHubError):
    """Raised when GitHub kept failing (rate limits, 5xx, network) after retries."""
