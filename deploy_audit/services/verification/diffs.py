"""
Verification diffs.

Recompute verdicts from cached snapshots only and compare them with what is
stored on the deployments, to see what a re-verification would change.
"""

from typing import List, Optional

from pydantic import BaseModel
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from deploy_audit.core.logging import get_logger
from deploy_audit.db.models.deployment import PENDING_STATUS, Deployment
from deploy_audit.integrations.github.errors import DataUnavailableError
from deploy_audit.services.verification.engine import verify_deployment
from deploy_audit.services.verification.errors import (
    InvalidVerificationInput,
    SnapshotMissing,
)
from deploy_audit.services.verification.fetch import VerificationDataFetcher
from deploy_audit.services.verification.store import four_eyes_flag
from deploy_audit.services.verification.types import (
    PROTECTED_STATUSES,
    VerificationStatus,
)

logger = get_logger(__name__)

# Status names written by earlier versions of the service.
LEGACY_STATUS_ALIASES = {
    "approved_pr": VerificationStatus.APPROVED.value,
    "pending_approval": PENDING_STATUS,
}


class VerificationDiff(BaseModel):
    deployment_id: int
    commit_sha: Optional[str] = None
    stored_status: str
    computed_status: str
    stored_has_four_eyes: Optional[bool] = None
    computed_has_four_eyes: Optional[bool] = None


def normalize_status(status: Optional[str]) -> str:
    if status is None:
        return PENDING_STATUS
    return LEGACY_STATUS_ALIASES.get(status, status)


async def compute_verification_diffs(
    session: AsyncSession, monitored_app_id: int
) -> List[VerificationDiff]:
    """
    Compare stored verdicts with verdicts recomputed from cache.

    Deployments with manual or legacy status are skipped, as are deployments
    whose data was never cached or is invalid.
    """
    statement = (
        select(Deployment)
        .where(Deployment.monitored_app_id == monitored_app_id)
        .order_by(Deployment.created_at)
    )
    result = await session.execute(statement)
    deployments = result.scalars().all()

    diffs: List[VerificationDiff] = []

    for deployment in deployments:
        if deployment.four_eyes_status in PROTECTED_STATUSES:
            continue
        # Memoized lookups are scoped to one deployment.
        fetcher = VerificationDataFetcher(session, github=None, cache_only=True)
        try:
            verification_input = await fetcher.build_input(deployment)
        except (SnapshotMissing, InvalidVerificationInput, DataUnavailableError) as e:
            logger.debug("Skipping deployment %s in diff: %s", deployment.id, e)
            continue

        fresh = verify_deployment(verification_input)
        fresh_flag = four_eyes_flag(fresh.status)
        stored_status = normalize_status(deployment.four_eyes_status)
        if stored_status != fresh.status.value or deployment.has_four_eyes != fresh_flag:
            diffs.append(
                VerificationDiff(
                    deployment_id=deployment.id,
                    commit_sha=deployment.commit_sha,
                    stored_status=stored_status,
                    computed_status=fresh.status.value,
                    stored_has_four_eyes=deployment.has_four_eyes,
                    computed_has_four_eyes=fresh_flag,
                )
            )

    logger.info(
        "Application %s: %d of %d deployments differ",
        monitored_app_id,
        len(diffs),
        len(deployments),
    )
    return diffs
