"""
GitHub App authentication utilities.
"""

import time
from typing import Optional

import httpx
import jwt

from deploy_audit.core.config import settings
from deploy_audit.core.logging import get_logger
from deploy_audit.integrations.github.errors import GitHubAuthError

logger = get_logger(__name__)


def create_app_jwt(app_id: str, private_key: str, now: Optional[int] = None) -> str:
    """Create the short-lived JWT that identifies the GitHub App."""
    issued = int(now if now is not None else time.time())
    payload = {
        "iat": issued - 60,
        "exp": issued + (10 * 60),
        "iss": app_id,
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


async def get_installation_token(
    installation_id: int,
    app_id: Optional[str] = None,
    private_key: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Exchanges Private Key + Installation ID for a temporary Token"""
    app_id = app_id or settings.GITHUB_APP_ID
    private_key = private_key or settings.GITHUB_APP_PRIVATE_KEY
    if not app_id or not private_key:
        raise GitHubAuthError(None, "GitHub App credentials are not configured")

    jwt_token = create_app_jwt(app_id, private_key)

    async with httpx.AsyncClient(transport=transport) as client:
        resp = await client.post(
            f"{settings.GITHUB_API_URL}/app/installations/{installation_id}/access_tokens",
            headers={
                "Authorization": f"Bearer {jwt_token}",
                "Accept": "application/vnd.github+json",
            },
        )
    if resp.status_code >= 400:
        raise GitHubAuthError(resp.status_code, "Could not obtain installation token")
    return resp.json()["token"]


async def resolve_token() -> Optional[str]:
    """
    Pick credentials for API calls: GitHub App installation token when the
    App is configured, else the personal access token, else anonymous.
    """
    if settings.GITHUB_APP_INSTALLATION_ID and settings.GITHUB_APP_ID:
        logger.debug("Using GitHub App installation %s", settings.GITHUB_APP_INSTALLATION_ID)
        return await get_installation_token(settings.GITHUB_APP_INSTALLATION_ID)
    return settings.GITHUB_TOKEN
