"""
GitHub client dependency.
"""

from typing import AsyncGenerator

from deploy_audit.integrations.github.auth import resolve_token
from deploy_audit.integrations.github.client import GitHubClient


async def get_github_client() -> AsyncGenerator[GitHubClient, None]:
    """GitHub client authenticated as the App installation or with a token."""
    token = await resolve_token()
    async with GitHubClient(token=token) as client:
        yield client
