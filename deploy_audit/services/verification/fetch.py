"""
Assemble VerificationInput for a deployment.

All I/O for a verification happens here, before the engine runs: policy and
previous deployment from the database, commit ranges and pull requests from
the snapshot store or GitHub. The result is a plain immutable value.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional

from sqlalchemy import desc
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from deploy_audit.core.config import settings
from deploy_audit.core.logging import get_logger
from deploy_audit.db.models.deployment import Deployment
from deploy_audit.db.models.github_snapshot import GithubSnapshot, SnapshotKind
from deploy_audit.db.models.monitored_application import (
    ApplicationRepository,
    MonitoredApplication,
)
from deploy_audit.integrations.github.client import GitHubClient
from deploy_audit.integrations.github.errors import DataUnavailableError
from deploy_audit.integrations.github.mappers import (
    to_commit,
    to_pull_request_metadata,
    to_pull_request_snapshot,
    to_review,
)
from deploy_audit.services.verification.cache_decision import (
    CacheDecision,
    CachedCommitVerdict,
    decide_commit_cache_action,
)
from deploy_audit.services.verification.errors import (
    InvalidVerificationInput,
    SnapshotMissing,
)
from deploy_audit.services.verification.matcher import find_pull_request
from deploy_audit.services.verification.snapshots import (
    SnapshotStore,
    commit_subject,
    compare_subject,
    pr_subject,
)
from deploy_audit.services.verification.types import (
    Commit,
    CommitInRange,
    ImplicitApprovalMode,
    PreviousDeployment,
    PullRequestSnapshot,
    RepositoryStatus,
    Review,
    VerificationInput,
)

logger = get_logger(__name__)


class VerificationDataFetcher:
    """
    Builds engine input for deployments.

    One instance serves one verification run (or one bulk run): pull request
    snapshots are fetched once and reused.

    Args:
        session: Database session for policy, deployments and snapshots.
        github: GitHub client. May be None when `cache_only` is set.
        force_refresh: Ignore cached GitHub data and fetch again.
        cache_only: Never call GitHub; raise SnapshotMissing instead.
    """

    def __init__(
        self,
        session: AsyncSession,
        github: Optional[GitHubClient],
        force_refresh: bool = False,
        cache_only: bool = False,
    ):
        if github is None and not cache_only:
            raise ValueError("A GitHub client is required unless cache_only is set")
        self.session = session
        self.github = github
        self.force_refresh = force_refresh
        self.cache_only = cache_only
        self.snapshots = SnapshotStore(session)
        self._pull_requests: Dict[int, PullRequestSnapshot] = {}

    @property
    def snapshot_ids(self) -> List[int]:
        return list(self.snapshots.used_ids)

    async def build_input(self, deployment: Deployment) -> VerificationInput:
        """
        Collect everything the engine needs for one deployment.

        Raises:
            InvalidVerificationInput: deployment lacks sha/repository or its
                application is unknown.
            DataUnavailableError: GitHub no longer has required data.
            TransientGitHubError: GitHub kept failing.
            SnapshotMissing: cache_only and data was never fetched.
        """
        if not deployment.commit_sha:
            raise InvalidVerificationInput(f"Deployment {deployment.id} has no commit sha")
        if not deployment.owner or not deployment.repo:
            raise InvalidVerificationInput(f"Deployment {deployment.id} has no repository")

        app = await self.session.get(MonitoredApplication, deployment.monitored_app_id)
        if app is None:
            raise InvalidVerificationInput(
                f"Deployment {deployment.id} references unknown application "
                f"{deployment.monitored_app_id}"
            )

        owner, repo = deployment.owner, deployment.repo
        base_branch = app.default_branch or settings.DEFAULT_BASE_BRANCH
        repository_status = await self.repository_status(app.id, owner, repo)
        previous = await self.previous_deployment(deployment, app)

        common = dict(
            deployment_id=deployment.id,
            commit_sha=deployment.commit_sha,
            owner=owner,
            repo=repo,
            environment_name=deployment.environment_name,
            base_branch=base_branch,
            repository_status=repository_status,
            previous_deployment=previous,
            implicit_approval_mode=ImplicitApprovalMode(app.implicit_approval_mode),
        )
        # The engine decides these without GitHub data.
        if repository_status != RepositoryStatus.ACTIVE or previous is None:
            return VerificationInput(**common)

        deployed_pr = await self.find_pull_request_for_commit(
            owner, repo, deployment.commit_sha, base_branch
        )
        range_commits = await self.commits_between(
            owner, repo, previous.commit_sha, deployment.commit_sha
        )

        entries: List[CommitInRange] = []
        for commit in range_commits:
            entries.append(
                await self._resolve_commit(owner, repo, commit, base_branch, deployed_pr)
            )

        return VerificationInput(**common, deployed_pr=deployed_pr, commits=tuple(entries))

    # -------------------------------------------------------------------------
    # Database lookups
    # -------------------------------------------------------------------------
    async def repository_status(
        self, monitored_app_id: int, owner: str, repo: str
    ) -> RepositoryStatus:
        statement = select(ApplicationRepository).where(
            ApplicationRepository.monitored_app_id == monitored_app_id,
            ApplicationRepository.owner == owner,
            ApplicationRepository.repo == repo,
        )
        result = await self.session.execute(statement)
        row = result.scalars().first()
        if row is None:
            return RepositoryStatus.UNKNOWN
        return RepositoryStatus(row.status)

    async def previous_deployment(
        self, deployment: Deployment, app: MonitoredApplication
    ) -> Optional[PreviousDeployment]:
        """
        Latest earlier deployment of the same application and environment,
        within the audit period.
        """
        audit_year = app.audit_start_year or settings.DEFAULT_AUDIT_START_YEAR
        audit_start = datetime(audit_year, 1, 1, tzinfo=timezone.utc)

        statement = (
            select(Deployment)
            .where(
                Deployment.monitored_app_id == deployment.monitored_app_id,
                Deployment.environment_name == deployment.environment_name,
                Deployment.id != deployment.id,
                Deployment.created_at < deployment.created_at,
                Deployment.created_at >= audit_start,
                Deployment.commit_sha.is_not(None),
            )
            .order_by(desc(Deployment.created_at))
            .limit(1)
        )
        result = await self.session.execute(statement)
        row = result.scalars().first()
        if row is None:
            return None
        return PreviousDeployment(id=row.id, commit_sha=row.commit_sha, created_at=row.created_at)

    # -------------------------------------------------------------------------
    # GitHub data via snapshot store
    # -------------------------------------------------------------------------
    async def commits_between(
        self, owner: str, repo: str, base: str, head: str
    ) -> List[Commit]:
        """Commits reachable from head but not base, oldest first."""
        if base == head:
            return []
        subject = compare_subject(base, head)
        # Ranges between fixed shas never change.
        snapshot = await self._cached(owner, repo, subject, SnapshotKind.COMPARE)
        if snapshot is not None:
            return [Commit.model_validate(c) for c in snapshot.data]

        data = await self._from_github(
            owner, repo, subject, SnapshotKind.COMPARE,
            self.github.compare_commits(owner, repo, base, head),
        )
        commits = [to_commit(item) for item in data.get("commits") or []]
        await self.snapshots.record(
            owner, repo, subject, SnapshotKind.COMPARE,
            [c.model_dump(mode="json") for c in commits],
        )
        return commits

    async def pull_request(self, owner: str, repo: str, number: int) -> PullRequestSnapshot:
        """PR metadata, reviews and commits, fetched at most once per run."""
        if number in self._pull_requests:
            return self._pull_requests[number]

        subject = pr_subject(number)
        metadata = await self._cached(owner, repo, subject, SnapshotKind.PR_METADATA)
        reviews = await self._cached(owner, repo, subject, SnapshotKind.PR_REVIEWS)
        commits = await self._cached(owner, repo, subject, SnapshotKind.PR_COMMITS)

        if metadata is None:
            raw = await self._from_github(
                owner, repo, subject, SnapshotKind.PR_METADATA,
                self.github.get_pull_request(owner, repo, number),
            )
            metadata = await self.snapshots.record(
                owner, repo, subject, SnapshotKind.PR_METADATA, to_pull_request_metadata(raw)
            )
        if reviews is None:
            raw = await self._from_github(
                owner, repo, subject, SnapshotKind.PR_REVIEWS,
                self.github.list_pull_request_reviews(owner, repo, number),
            )
            reviews = await self.snapshots.record(
                owner, repo, subject, SnapshotKind.PR_REVIEWS,
                [to_review(r).model_dump(mode="json") for r in raw],
            )
        if commits is None:
            raw = await self._from_github(
                owner, repo, subject, SnapshotKind.PR_COMMITS,
                self.github.list_pull_request_commits(owner, repo, number),
            )
            commits = await self.snapshots.record(
                owner, repo, subject, SnapshotKind.PR_COMMITS,
                [to_commit(c).model_dump(mode="json") for c in raw],
            )

        snapshot = to_pull_request_snapshot(
            metadata.data,
            [Review.model_validate(r) for r in reviews.data],
            [Commit.model_validate(c) for c in commits.data],
        )
        self._pull_requests[number] = snapshot
        return snapshot

    async def associated_pr_numbers(
        self, owner: str, repo: str, sha: str, base_branch: str
    ) -> List[int]:
        """
        PR numbers GitHub associates with a commit, restricted to the base
        branch. A cached empty result is retried when the commit's last
        verdict was `no_pr`, since later matching may resolve it.
        """
        subject = commit_subject(sha)
        cached = await self._cached(owner, repo, subject, SnapshotKind.COMMIT_PRS)
        if cached is not None:
            numbers = [
                pr["number"] for pr in cached.data if pr.get("base_branch") == base_branch
            ]
            if numbers or self.cache_only:
                return numbers
            verdict = await self.snapshots.latest(
                owner, repo, subject, SnapshotKind.COMMIT_VERDICT
            )
            decision = decide_commit_cache_action(
                CachedCommitVerdict(**verdict.data) if verdict and verdict.data else None,
                self.force_refresh,
            )
            if decision != CacheDecision.RECHECK:
                return numbers

        pulls = await self._from_github(
            owner, repo, subject, SnapshotKind.COMMIT_PRS,
            self.github.list_pull_requests_for_commit(owner, repo, sha),
        )
        associations = [
            {"number": p["number"], "base_branch": (p.get("base") or {}).get("ref")}
            for p in pulls
        ]
        await self.snapshots.record(owner, repo, subject, SnapshotKind.COMMIT_PRS, associations)
        return [a["number"] for a in associations if a["base_branch"] == base_branch]

    async def find_pull_request_for_commit(
        self, owner: str, repo: str, sha: str, base_branch: str
    ) -> Optional[PullRequestSnapshot]:
        """The PR that brought `sha` into the base branch, if any."""
        numbers = await self.associated_pr_numbers(owner, repo, sha, base_branch)
        for number in numbers:
            pr = await self.pull_request(owner, repo, number)
            if pr.base_branch == base_branch and pr.contains_sha(sha):
                return pr
        if numbers:
            return await self.pull_request(owner, repo, numbers[0])
        return None

    async def _resolve_commit(
        self,
        owner: str,
        repo: str,
        commit: Commit,
        base_branch: str,
        deployed_pr: Optional[PullRequestSnapshot],
    ) -> CommitInRange:
        for number in await self.associated_pr_numbers(owner, repo, commit.sha, base_branch):
            await self.pull_request(owner, repo, number)

        candidates = list(self._pull_requests.values())
        if deployed_pr is not None and deployed_pr.number not in self._pull_requests:
            candidates.insert(0, deployed_pr)

        match = find_pull_request(commit, candidates, base_branch)
        if match is None:
            return CommitInRange(commit=commit)
        return CommitInRange(
            commit=commit, pull_request=match.pull_request, match_method=match.method
        )

    async def _cached(
        self, owner: str, repo: str, subject: str, kind: SnapshotKind
    ) -> Optional[GithubSnapshot]:
        """
        Usable cached snapshot, if any.

        Raises:
            DataUnavailableError: the newest snapshot records that GitHub no
                longer has the data.
            SnapshotMissing: cache_only and nothing is stored.
        """
        if self.force_refresh and not self.cache_only:
            return None
        snapshot = await self.snapshots.latest(owner, repo, subject, kind)
        if snapshot is None:
            if self.cache_only:
                raise SnapshotMissing(f"No {kind.value} snapshot for {owner}/{repo} {subject}")
            return None
        if not snapshot.available:
            raise DataUnavailableError(
                None, f"{kind.value} for {owner}/{repo} {subject} is no longer available"
            )
        return snapshot

    async def _from_github(
        self,
        owner: str,
        repo: str,
        subject: str,
        kind: SnapshotKind,
        request: Awaitable[Any],
    ) -> Any:
        """
        Await a GitHub request, recording an unavailable snapshot on 404/410.
        """
        try:
            return await request
        except DataUnavailableError:
            logger.warning("GitHub data gone: %s %s/%s %s", kind.value, owner, repo, subject)
            await self.snapshots.record(owner, repo, subject, kind, None, available=False)
            raise
