"""
GitHub REST API client for verification data.

Fetches commit ranges, pull request metadata/reviews/commits and
commit-to-PR associations. Failures are classified for the caller:

- 404/410 -> DataUnavailableError (history is gone, do not retry)
- 429, 5xx, secondary rate limits, network errors -> retried with
  exponential backoff, then TransientGitHubError
"""

import asyncio
import random
from typing import Any, Dict, List, Optional

import httpx

from deploy_audit.core.config import settings
from deploy_audit.core.logging import get_logger
from deploy_audit.integrations.github.errors import (
    DataUnavailableError,
    GitHubAuthError,
    GitHubError,
    TransientGitHubError,
)

logger = get_logger(__name__)

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
PER_PAGE = 100
# GitHub stops paginating PR commits at 250.
MAX_PAGES = 10


class GitHubClient:
    """Async client for the GitHub REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize GitHub client.

        Args:
            token: GitHub Personal Access Token or GitHub App token
            base_url: API root, defaults to settings.GITHUB_API_URL
            transport: Custom httpx transport (used by tests)
        """
        self.max_retries = settings.GITHUB_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_base = settings.GITHUB_BACKOFF_BASE if backoff_base is None else backoff_base
        self.backoff_max = settings.GITHUB_BACKOFF_MAX if backoff_max is None else backoff_max

        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "deploy-audit/1.0",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.GITHUB_API_URL,
            headers=headers,
            timeout=settings.GITHUB_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------
    async def get_pull_request(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return await self._get_json(f"/repos/{owner}/{repo}/pulls/{number}")

    async def list_pull_request_reviews(
        self, owner: str, repo: str, number: int
    ) -> List[Dict[str, Any]]:
        return await self._get_paginated(f"/repos/{owner}/{repo}/pulls/{number}/reviews")

    async def list_pull_request_commits(
        self, owner: str, repo: str, number: int
    ) -> List[Dict[str, Any]]:
        return await self._get_paginated(f"/repos/{owner}/{repo}/pulls/{number}/commits")

    async def list_pull_requests_for_commit(
        self, owner: str, repo: str, sha: str
    ) -> List[Dict[str, Any]]:
        """Pull requests associated with a commit, on any base branch."""
        return await self._get_paginated(f"/repos/{owner}/{repo}/commits/{sha}/pulls")

    async def compare_commits(
        self, owner: str, repo: str, base: str, head: str
    ) -> Dict[str, Any]:
        """
        Compare two commits.

        Returns:
            The compare payload; `commits` lists every commit reachable from
            head but not from base, oldest first, across all pages.

        Raises:
            DataUnavailableError: GitHub would not list the whole range.
        """
        path = f"/repos/{owner}/{repo}/compare/{base}...{head}"
        data = await self._get_json(path, {"per_page": PER_PAGE, "page": 1})
        commits = list(data.get("commits") or [])
        total = data.get("total_commits", len(commits))

        page = 1
        while len(commits) < total and page < MAX_PAGES:
            page += 1
            batch = await self._get_json(path, {"per_page": PER_PAGE, "page": page})
            if not batch.get("commits"):
                break
            commits.extend(batch["commits"])

        if len(commits) != total:
            raise DataUnavailableError(
                None, f"GET {path}: listed {len(commits)} of {total} commits"
            )
        return {**data, "commits": commits}

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------
    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._request("GET", path, params)
        return response.json()

    async def _get_paginated(self, path: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            batch = await self._get_json(path, {"per_page": PER_PAGE, "page": page})
            items.extend(batch)
            if len(batch) < PER_PAGE:
                break
        return items

    async def _request(
        self, method: str, path: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """
        Execute a request with automatic retry on transient failures.

        Raises:
            DataUnavailableError: 404 or 410
            GitHubAuthError: 401
            TransientGitHubError: retryable failure persisted past max_retries
            GitHubError: any other 4xx
        """
        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client.request(method, path, params=params)
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise TransientGitHubError(None, f"{method} {path}: {e}") from e
                wait_time = self._backoff_time(attempt, None)
                logger.warning(
                    "GitHub %s %s failed (%s), retrying in %.1fs", method, path, e, wait_time
                )
                await asyncio.sleep(wait_time)
                continue

            if response.status_code < 400:
                return response

            status = response.status_code
            message = _error_message(response)

            if status in (404, 410):
                raise DataUnavailableError(status, f"{method} {path}: {message}")
            if status == 401:
                raise GitHubAuthError(status, message)
            if not _is_retryable(response):
                raise GitHubError(status, f"{method} {path}: {message}")
            if attempt >= self.max_retries:
                raise TransientGitHubError(status, f"{method} {path}: {message}")

            wait_time = self._backoff_time(attempt, response.headers.get("Retry-After"))
            logger.warning(
                "GitHub %s %s returned %s, retrying in %.1fs", method, path, status, wait_time
            )
            await asyncio.sleep(wait_time)

        raise TransientGitHubError(None, f"{method} {path}: retries exhausted")

    def _backoff_time(self, attempt: int, retry_after: Optional[str]) -> float:
        """Exponential backoff with +/-10% jitter, honouring Retry-After."""
        if retry_after:
            try:
                return min(float(retry_after), self.backoff_max)
            except ValueError:
                pass

        base_wait = self.backoff_base * (2**attempt)
        jitter = random.uniform(-0.1 * base_wait, 0.1 * base_wait)
        return max(0.0, min(base_wait + jitter, self.backoff_max))


def _is_retryable(response: httpx.Response) -> bool:
    if response.status_code in RETRY_STATUS_CODES:
        return True
    # Primary rate limit exhaustion is reported as 403
    return (
        response.status_code == 403
        and response.headers.get("X-RateLimit-Remaining") == "0"
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return body.get("message", response.text)
    return response.text
