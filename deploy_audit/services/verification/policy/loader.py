"""
Policy loading utilities.
"""

import re
from functools import lru_cache
from typing import Any, Dict, List

import yaml
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from deploy_audit.core.logging import get_logger
from deploy_audit.db.models.monitored_application import (
    ApplicationRepository,
    MonitoredApplication,
)
from deploy_audit.services.verification.policy.types import ApplicationPolicy

logger = get_logger(__name__)

REPOSITORY_PATTERN = re.compile(r"^[\w.-]+/[\w.-]+$")


@lru_cache(maxsize=4)
def load_policy(policy_path: str) -> Dict[str, Any]:
    """
    Load policy from YAML file.

    Args:
        policy_path: Path to the policy YAML file.

    Returns:
        Dictionary containing the policy.
    """
    with open(policy_path, "r", encoding="utf-8") as f:
        policy = yaml.safe_load(f)
    return policy or {}


def get_application_policies(policy: Dict[str, Any]) -> List[ApplicationPolicy]:
    """
    Extract application policies, skipping malformed entries.

    Args:
        policy: The policy dictionary.
    """
    policies = []
    for entry in policy.get("applications") or []:
        try:
            app_policy = ApplicationPolicy.model_validate(entry)
        except ValueError as e:
            logger.error("Invalid application policy %r: %s", entry, e)
            continue
        bad = [r.name for r in app_policy.repositories if not REPOSITORY_PATTERN.match(r.name)]
        if bad:
            logger.error(
                "Application %s has repositories not in owner/repo form: %s",
                app_policy.app,
                ", ".join(bad),
            )
            continue
        policies.append(app_policy)
    return policies


async def register_applications(
    session: AsyncSession, policies: List[ApplicationPolicy]
) -> List[MonitoredApplication]:
    """
    Create or update monitored applications and their repositories.
    """
    registered = []
    for app_policy in policies:
        result = await session.execute(
            select(MonitoredApplication).where(
                MonitoredApplication.team_slug == app_policy.team,
                MonitoredApplication.environment_name == app_policy.environment,
                MonitoredApplication.app_name == app_policy.app,
            )
        )
        app = result.scalars().first()
        if app is None:
            app = MonitoredApplication(
                team_slug=app_policy.team,
                environment_name=app_policy.environment,
                app_name=app_policy.app,
            )
        app.default_branch = app_policy.default_branch
        app.audit_start_year = app_policy.audit_start_year
        app.implicit_approval_mode = app_policy.implicit_approval_mode.value
        session.add(app)
        await session.flush()

        for repo_policy in app_policy.repositories:
            result = await session.execute(
                select(ApplicationRepository).where(
                    ApplicationRepository.monitored_app_id == app.id,
                    ApplicationRepository.owner == repo_policy.owner,
                    ApplicationRepository.repo == repo_policy.repo,
                )
            )
            repository = result.scalars().first() or ApplicationRepository(
                monitored_app_id=app.id, owner=repo_policy.owner, repo=repo_policy.repo
            )
            repository.status = repo_policy.status.value
            session.add(repository)

        registered.append(app)

    await session.commit()
    logger.info("Registered %d monitored application(s)", len(registered))
    return registered
