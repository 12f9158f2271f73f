"""
GitHub integration: REST client, App authentication and payload mapping.
"""

from deploy_audit.integrations.github.client import GitHubClient
from deploy_audit.integrations.github.errors import (
    DataUnavailableError,
    GitHubAuthError,
    GitHubError,
    TransientGitHubError,
)

__all__ = [
    "GitHubClient",
    "GitHubError",
    "GitHubAuthError",
    "DataUnavailableError",
    "TransientGitHubError",
]
