"""
Persist verification results.

Writes the deployment's current four-eyes status, an append-only
verification run, its unverified-commit rows and a status-transition audit
entry. Manual and legacy statuses always win: the status UPDATE is a
compare-and-skip guarded on the stored status.
"""

import asyncio
from typing import Optional, Sequence, assert_never

from sqlalchemy import or_, update
from sqlalchemy.exc import OperationalError
from sqlmodel.ext.asyncio.session import AsyncSession

from deploy_audit.core.logging import get_logger
from deploy_audit.db.models.deployment import Deployment
from deploy_audit.db.models.status_transition import DeploymentStatusTransition
from deploy_audit.db.models.unverified_commit import UnverifiedCommitRecord
from deploy_audit.db.models.verification_run import VerificationRun
from deploy_audit.services.verification.errors import DeploymentNotFound
from deploy_audit.services.verification.types import (
    PROTECTED_STATUSES,
    VerificationResult,
    VerificationStatus,
)

logger = get_logger(__name__)

WRITE_RETRIES = 3
WRITE_RETRY_DELAY = 0.5


def four_eyes_flag(status: VerificationStatus) -> Optional[bool]:
    """
    Value stored in `deployment.has_four_eyes` for an automated status.

    Raises:
        ValueError: for manual statuses, which automation never writes.
    """
    if status == VerificationStatus.APPROVED:
        return True
    elif status == VerificationStatus.IMPLICITLY_APPROVED:
        return True
    elif status == VerificationStatus.NO_CHANGES:
        return True
    elif status == VerificationStatus.UNVERIFIED_COMMITS:
        return False
    elif status == VerificationStatus.UNAUTHORIZED_REPOSITORY:
        return False
    elif status == VerificationStatus.PENDING_BASELINE:
        return None
    elif status == VerificationStatus.ERROR:
        return None
    elif status == VerificationStatus.MANUALLY_APPROVED:
        raise ValueError("manually_approved is never written by verification")
    elif status == VerificationStatus.LEGACY:
        raise ValueError("legacy is never written by verification")
    else:
        assert_never(status)


class VerificationResultStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def store(
        self,
        deployment_id: int,
        result: VerificationResult,
        change_source: str = "verification",
        snapshot_ids: Sequence[int] = (),
    ) -> Optional[VerificationRun]:
        """
        Persist a result, retrying on transient database errors.

        Returns:
            The verification run, or None when the deployment carries a
            manual/legacy status and nothing was written.

        Raises:
            DeploymentNotFound: unknown deployment.
            OperationalError: database kept failing.
        """
        if result.status.value in PROTECTED_STATUSES:
            logger.warning(
                "Refusing to store %s result for deployment %s", result.status.value, deployment_id
            )
            return None

        for attempt in range(WRITE_RETRIES):
            try:
                return await self._store_once(deployment_id, result, change_source, snapshot_ids)
            except OperationalError:
                await self.session.rollback()
                if attempt + 1 >= WRITE_RETRIES:
                    raise
                logger.warning(
                    "Storing verification for deployment %s failed, retrying (%d/%d)",
                    deployment_id,
                    attempt + 1,
                    WRITE_RETRIES,
                )
                await asyncio.sleep(WRITE_RETRY_DELAY * (attempt + 1))
        return None

    async def _store_once(
        self,
        deployment_id: int,
        result: VerificationResult,
        change_source: str,
        snapshot_ids: Sequence[int],
    ) -> Optional[VerificationRun]:
        deployment = await self.session.get(Deployment, deployment_id)
        if deployment is None:
            raise DeploymentNotFound(deployment_id)

        previous_status = deployment.four_eyes_status
        previous_flag = deployment.has_four_eyes
        if previous_status in PROTECTED_STATUSES:
            logger.info(
                "Deployment %s is %s, keeping it", deployment_id, previous_status
            )
            return None

        new_status = result.status.value
        new_flag = four_eyes_flag(result.status)
        deployed_pr = result.deployed_pr

        statement = (
            update(Deployment)
            .where(
                Deployment.id == deployment_id,
                or_(
                    Deployment.four_eyes_status.is_(None),
                    Deployment.four_eyes_status.not_in(PROTECTED_STATUSES),
                ),
            )
            .values(
                four_eyes_status=new_status,
                has_four_eyes=new_flag,
                github_pr_number=deployed_pr.number if deployed_pr else None,
                github_pr_url=deployed_pr.url if deployed_pr else None,
            )
            .execution_options(synchronize_session=False)
        )
        outcome = await self.session.execute(statement)
        if outcome.rowcount == 0:
            # A manual approval landed between our read and write.
            await self.session.rollback()
            logger.info("Deployment %s changed concurrently, result discarded", deployment_id)
            return None

        run = VerificationRun(
            deployment_id=deployment_id,
            schema_version=result.schema_version,
            status=new_status,
            has_four_eyes=new_flag,
            change_source=change_source,
            run_at=result.verified_at,
            result=result.model_dump(mode="json"),
            snapshot_ids=list(snapshot_ids),
        )
        self.session.add(run)
        await self.session.flush()

        for item in result.unverified_commits:
            self.session.add(
                UnverifiedCommitRecord(
                    deployment_id=deployment_id,
                    verification_run_id=run.id,
                    sha=item.sha,
                    message=item.message,
                    author=item.author,
                    commit_date=item.date,
                    url=item.url,
                    pr_number=item.pr_number,
                    reason=item.reason.value,
                )
            )

        if previous_status != new_status or previous_flag != new_flag:
            self.session.add(
                DeploymentStatusTransition(
                    deployment_id=deployment_id,
                    from_status=previous_status,
                    to_status=new_status,
                    from_has_four_eyes=previous_flag,
                    to_has_four_eyes=new_flag,
                    change_source=change_source,
                )
            )
            logger.info(
                "Deployment %s: %s -> %s", deployment_id, previous_status, new_status
            )

        await self.session.commit()
        await self.session.refresh(deployment)
        return run
