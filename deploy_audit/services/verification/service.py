"""
Verification service.

Runs fetch, engine and store for one deployment or every deployment of an
application, and records what each run looked at.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import desc
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from deploy_audit.core.logging import get_logger
from deploy_audit.db.models.deployment import Deployment
from deploy_audit.db.models.github_snapshot import SnapshotKind
from deploy_audit.db.models.verification_run import VerificationRun
from deploy_audit.integrations.github.client import GitHubClient
from deploy_audit.integrations.github.errors import DataUnavailableError, GitHubError
from deploy_audit.services.verification.engine import (
    find_unverified_commits,
    verify_deployment,
)
from deploy_audit.services.verification.errors import (
    DeploymentNotFound,
    InvalidVerificationInput,
)
from deploy_audit.services.verification.fetch import VerificationDataFetcher
from deploy_audit.services.verification.snapshots import commit_subject
from deploy_audit.services.verification.store import VerificationResultStore
from deploy_audit.services.verification.types import (
    PROTECTED_STATUSES,
    ApprovalDetails,
    ApprovalMethod,
    VerificationInput,
    VerificationResult,
    VerificationStatus,
)

logger = get_logger(__name__)


class BulkVerificationSummary(BaseModel):
    total: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[str] = Field(default_factory=list)


def error_result(reason: str) -> VerificationResult:
    return VerificationResult(
        has_four_eyes=False,
        status=VerificationStatus.ERROR,
        approval_details=ApprovalDetails(method=ApprovalMethod.NONE, reason=reason),
        verified_at=datetime.now(timezone.utc),
    )


class VerificationService:
    def __init__(self, session: AsyncSession, github: Optional[GitHubClient] = None):
        self.session = session
        self.github = github
        self.results = VerificationResultStore(session)

    async def verify(
        self,
        deployment_id: int,
        force_refresh: bool = False,
        change_source: str = "verification",
    ) -> VerificationResult:
        """
        Verify one deployment end to end.

        1. Assemble input (database + snapshot store + GitHub)
        2. Run the decision engine
        3. Cache per-commit verdicts and persist the result

        When GitHub no longer has the data, an `error` result is stored and
        returned instead of raising.

        Raises:
            DeploymentNotFound: unknown deployment
            InvalidVerificationInput: deployment cannot be verified as recorded
            TransientGitHubError: GitHub kept failing; safe to retry later
        """
        deployment = await self.session.get(Deployment, deployment_id)
        if deployment is None:
            raise DeploymentNotFound(deployment_id)

        fetcher = VerificationDataFetcher(
            self.session, self.github, force_refresh=force_refresh
        )
        try:
            verification_input = await fetcher.build_input(deployment)
        except DataUnavailableError as e:
            # Keep the unavailable marker so we don't ask again.
            await self.session.commit()
            logger.warning("Deployment %s cannot be verified: %s", deployment_id, e.message)
            result = error_result(f"GitHub data unavailable: {e.message}")
            await self.results.store(
                deployment_id, result, change_source, fetcher.snapshot_ids
            )
            return result

        result = verify_deployment(verification_input)
        snapshot_ids = fetcher.snapshot_ids
        await self._record_commit_verdicts(fetcher, verification_input)
        await self.session.commit()

        await self.results.store(deployment_id, result, change_source, snapshot_ids)
        logger.info(
            "Deployment %s verified: %s (%d unverified)",
            deployment_id,
            result.status.value,
            len(result.unverified_commits),
        )
        return result

    async def reverify_application(
        self, monitored_app_id: int, force_refresh: bool = False
    ) -> BulkVerificationSummary:
        """
        Re-verify every deployment of an application, oldest first.

        Runs sequentially to stay within GitHub rate limits. Failures are
        counted and the run continues with the next deployment.
        """
        statement = (
            select(Deployment.id, Deployment.four_eyes_status)
            .where(Deployment.monitored_app_id == monitored_app_id)
            .order_by(Deployment.created_at)
        )
        rows = (await self.session.execute(statement)).all()
        summary = BulkVerificationSummary(total=len(rows))

        for deployment_id, status in rows:
            if status in PROTECTED_STATUSES:
                summary.skipped += 1
                continue
            try:
                await self.verify(deployment_id, force_refresh, change_source="reverification")
                summary.processed += 1
            except (InvalidVerificationInput, GitHubError) as e:
                await self.session.rollback()
                summary.errors += 1
                summary.error_details.append(f"{deployment_id}: {e}")
                logger.warning("Re-verification of deployment %s failed: %s", deployment_id, e)

        logger.info(
            "Re-verified application %s: %d processed, %d skipped, %d errors",
            monitored_app_id,
            summary.processed,
            summary.skipped,
            summary.errors,
        )
        return summary

    async def get_verification_runs(
        self, deployment_id: int, skip: int = 0, limit: int = 20
    ) -> List[VerificationRun]:
        """Verification history of a deployment, newest first."""
        statement = (
            select(VerificationRun)
            .where(VerificationRun.deployment_id == deployment_id)
            .order_by(desc(VerificationRun.run_at), desc(VerificationRun.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def _record_commit_verdicts(
        self, fetcher: VerificationDataFetcher, verification_input: VerificationInput
    ) -> None:
        """Cache the per-commit outcome for the next run's association lookups."""
        if not verification_input.commits:
            return
        unverified = {
            item.sha: item.reason.value
            for _, item in find_unverified_commits(verification_input)
        }
        owner, repo = verification_input.owner, verification_input.repo
        for entry in verification_input.commits:
            sha = entry.commit.sha
            verdict = {"approved": sha not in unverified, "reason": unverified.get(sha)}
            latest = await fetcher.snapshots.latest(
                owner, repo, commit_subject(sha), SnapshotKind.COMMIT_VERDICT
            )
            if latest is not None and latest.available and latest.data == verdict:
                continue
            await fetcher.snapshots.record(
                owner, repo, commit_subject(sha), SnapshotKind.COMMIT_VERDICT, verdict
            )
