"""End-to-end verification against an in-memory GitHub and SQLite."""

import pytest
from sqlmodel import select

from deploy_audit.db.models import (
    Deployment,
    GithubSnapshot,
    SnapshotKind,
    VerificationRun,
)
from deploy_audit.services.verification.diffs import (
    compute_verification_diffs,
    normalize_status,
)
from deploy_audit.services.verification.errors import (
    DeploymentNotFound,
    InvalidVerificationInput,
)
from deploy_audit.services.verification.service import VerificationService
from deploy_audit.services.verification.types import (
    ApprovalMethod,
    RepositoryStatus,
    UnverifiedReason,
    VerificationStatus,
)
from fake_github import FakeGitHub, gh_commit, gh_pull, gh_review
from factories import add_application, add_deployment, at

pytestmark = pytest.mark.anyio

COMPARE_PATH = "/repos/acme/app/compare/aaa...ccc"


@pytest.fixture
def github() -> FakeGitHub:
    """PR 7 merged as ccc, reviewed after its only commit bbb."""
    fake = FakeGitHub()
    feature = gh_commit("bbb", "2026-02-25T09:00:00Z", parents=["aaa"])
    merge = gh_commit(
        "ccc",
        "2026-02-25T11:00:00Z",
        message="Merge pull request #7 from acme/feature",
        parents=["aaa", "bbb"],
    )
    fake.add_pull(
        gh_pull(7, merge_commit_sha="ccc"),
        commits=[feature],
        reviews=[gh_review("reviewer-b", "2026-02-25T10:00:00Z")],
    )
    fake.associate("ccc", 7)
    fake.associate("bbb", 7)
    fake.compare("aaa", "ccc", [feature, merge])
    return fake


@pytest.fixture
async def app(session):
    return await add_application(session)


@pytest.fixture
async def baseline(session, app):
    return await add_deployment(session, app, "aaa", at(8))


@pytest.fixture
async def deployment(session, app, baseline):
    return await add_deployment(session, app, "ccc", at(12))


async def _snapshots(session, kind: SnapshotKind):
    statement = select(GithubSnapshot).where(GithubSnapshot.data_kind == kind.value)
    return (await session.execute(statement)).scalars().all()


class TestVerify:
    async def test_reviewed_pull_request_is_approved(self, session, github, deployment):
        service = VerificationService(session, github.client())

        result = await service.verify(deployment.id)

        assert result.status == VerificationStatus.APPROVED
        assert result.has_four_eyes is True
        assert result.approval_details.method == ApprovalMethod.PR_REVIEW
        assert result.approval_details.approvers == ("reviewer-b",)
        assert result.deployed_pr.number == 7

        stored = await session.get(Deployment, deployment.id)
        assert stored.four_eyes_status == "approved"
        assert stored.has_four_eyes is True
        assert stored.github_pr_number == 7

        runs = await service.get_verification_runs(deployment.id)
        assert len(runs) == 1
        assert runs[0].snapshot_ids

    async def test_second_run_uses_snapshots(self, session, github, deployment):
        service = VerificationService(session, github.client())

        await service.verify(deployment.id)
        calls = github.total_calls
        result = await service.verify(deployment.id)

        assert result.status == VerificationStatus.APPROVED
        assert github.total_calls == calls

    async def test_force_refresh_fetches_again(self, session, github, deployment):
        service = VerificationService(session, github.client())

        await service.verify(deployment.id)
        await service.verify(deployment.id, force_refresh=True)

        assert github.calls[COMPARE_PATH] == 2

    async def test_commit_without_pull_request(self, session, github, deployment):
        direct = gh_commit("bbb", "2026-02-25T09:00:00Z", message="Hotfix", parents=["aaa"])
        squash = gh_commit("ccc", "2026-02-25T11:00:00Z", parents=["bbb"])
        github.add_pull(
            gh_pull(7, merge_commit_sha="ccc"),
            commits=[gh_commit("f1", "2026-02-25T09:30:00Z")],
            reviews=[gh_review("reviewer-b", "2026-02-25T10:00:00Z")],
        )
        github.associate("bbb")
        github.compare("aaa", "ccc", [direct, squash])
        service = VerificationService(session, github.client())

        result = await service.verify(deployment.id)

        assert result.status == VerificationStatus.UNVERIFIED_COMMITS
        assert [(c.sha, c.reason) for c in result.unverified_commits] == [
            ("bbb", UnverifiedReason.NO_PR)
        ]
        verdicts = await _snapshots(session, SnapshotKind.COMMIT_VERDICT)
        by_subject = {v.subject: v.data for v in verdicts}
        assert by_subject["commit:bbb"] == {"approved": False, "reason": "no_pr"}
        assert by_subject["commit:ccc"] == {"approved": True, "reason": None}

    async def test_missing_association_is_rechecked(self, session, github, deployment):
        direct = gh_commit("bbb", "2026-02-25T09:00:00Z", message="Hotfix", parents=["aaa"])
        squash = gh_commit("ccc", "2026-02-25T11:00:00Z", parents=["bbb"])
        github.associate("bbb")
        github.add_pull(
            gh_pull(7, merge_commit_sha="ccc"),
            commits=[gh_commit("f1", "2026-02-25T09:30:00Z")],
            reviews=[gh_review("reviewer-b", "2026-02-25T10:00:00Z")],
        )
        github.compare("aaa", "ccc", [direct, squash])
        service = VerificationService(session, github.client())

        await service.verify(deployment.id)
        await service.verify(deployment.id)

        assert github.calls["/repos/acme/app/commits/bbb/pulls"] == 2
        assert github.calls["/repos/acme/app/commits/ccc/pulls"] == 1

    async def test_history_gone_stores_error(self, session, github, deployment):
        github.gone(COMPARE_PATH)
        service = VerificationService(session, github.client())

        result = await service.verify(deployment.id)

        assert result.status == VerificationStatus.ERROR
        assert result.has_four_eyes is False
        stored = await session.get(Deployment, deployment.id)
        assert stored.four_eyes_status == "error"
        assert stored.has_four_eyes is None

        markers = await _snapshots(session, SnapshotKind.COMPARE)
        assert [m.available for m in markers] == [False]

        await service.verify(deployment.id)
        assert github.calls[COMPARE_PATH] == 1

    async def test_unchanged_commit_verdicts_are_not_rewritten(self, session, github, deployment):
        service = VerificationService(session, github.client())

        await service.verify(deployment.id)
        await service.verify(deployment.id, force_refresh=True)

        verdicts = await _snapshots(session, SnapshotKind.COMMIT_VERDICT)
        assert sorted(v.subject for v in verdicts) == ["commit:bbb", "commit:ccc"]

    async def test_partially_listed_range_is_an_error(self, session, github, deployment):
        feature = gh_commit("bbb", "2026-02-25T09:00:00Z", parents=["aaa"])
        github.compare("aaa", "ccc", [feature], total_commits=300)
        service = VerificationService(session, github.client())

        result = await service.verify(deployment.id)

        assert result.status == VerificationStatus.ERROR
        assert "1 of 300" in result.approval_details.reason
        stored = await session.get(Deployment, deployment.id)
        assert stored.four_eyes_status == "error"

    async def test_first_deployment_is_pending_baseline(self, session, github, baseline):
        service = VerificationService(session, github.client())

        result = await service.verify(baseline.id)

        assert result.status == VerificationStatus.PENDING_BASELINE
        assert github.total_calls == 0
        stored = await session.get(Deployment, baseline.id)
        assert stored.has_four_eyes is None

    async def test_same_commit_redeployed_has_no_changes(self, session, github, app, baseline):
        redeploy = await add_deployment(session, app, "aaa", at(13))
        github.associate("aaa")
        service = VerificationService(session, github.client())

        result = await service.verify(redeploy.id)

        assert result.status == VerificationStatus.NO_CHANGES
        assert result.has_four_eyes is True

    async def test_unregistered_repository(self, session, github, app, baseline):
        other = await add_deployment(session, app, "ccc", at(12), repo="other")
        service = VerificationService(session, github.client())

        result = await service.verify(other.id)

        assert result.status == VerificationStatus.UNAUTHORIZED_REPOSITORY
        assert "acme/other" in result.approval_details.reason
        assert github.total_calls == 0

    async def test_historical_repository(self, session, github):
        app = await add_application(
            session, repositories=[("acme", "app", RepositoryStatus.HISTORICAL)]
        )
        await add_deployment(session, app, "aaa", at(8))
        deployment = await add_deployment(session, app, "ccc", at(12))
        service = VerificationService(session, github.client())

        result = await service.verify(deployment.id)

        assert result.status == VerificationStatus.UNAUTHORIZED_REPOSITORY

    async def test_deployment_without_sha(self, session, github, app):
        deployment = await add_deployment(session, app, None, at(12))
        service = VerificationService(session, github.client())

        with pytest.raises(InvalidVerificationInput):
            await service.verify(deployment.id)

    async def test_unknown_deployment(self, session, github):
        with pytest.raises(DeploymentNotFound):
            await VerificationService(session, github.client()).verify(999)

    async def test_manual_approval_survives(self, session, github, app, baseline):
        deployment = await add_deployment(
            session, app, "ccc", at(12), status="manually_approved", has_four_eyes=True
        )
        service = VerificationService(session, github.client())

        await service.verify(deployment.id)

        stored = await session.get(Deployment, deployment.id)
        assert stored.four_eyes_status == "manually_approved"
        assert stored.has_four_eyes is True
        runs = (await session.execute(select(VerificationRun))).scalars().all()
        assert runs == []


class TestReverify:
    async def test_summary(self, session, github, app, baseline, deployment):
        await add_deployment(
            session, app, "ddd", at(14), status="manually_approved", has_four_eyes=True
        )
        await add_deployment(session, app, None, at(15))
        service = VerificationService(session, github.client())

        summary = await service.reverify_application(app.id)

        assert summary.total == 4
        assert summary.processed == 2
        assert summary.skipped == 1
        assert summary.errors == 1
        assert len(summary.error_details) == 1

        stored = await session.get(Deployment, deployment.id)
        assert stored.four_eyes_status == "approved"


class TestDiffs:
    @pytest.mark.parametrize(
        "status, expected",
        [(None, "pending"), ("approved_pr", "approved"), ("pending_approval", "pending"),
         ("unverified_commits", "unverified_commits")],
    )
    def test_normalize_status(self, status, expected):
        assert normalize_status(status) == expected

    async def test_reports_only_changed_verdicts(self, session, github, app, baseline, deployment):
        service = VerificationService(session, github.client())
        await service.verify(baseline.id)
        await service.verify(deployment.id)
        never_fetched = await add_deployment(session, app, "eee", at(16))

        # Legacy name for the same verdict is not a change.
        stored = await session.get(Deployment, deployment.id)
        stored.four_eyes_status = "approved_pr"
        stale = await session.get(Deployment, baseline.id)
        stale.four_eyes_status = "pending_approval"
        await session.commit()
        calls = github.total_calls

        diffs = await compute_verification_diffs(session, app.id)

        assert [d.deployment_id for d in diffs] == [baseline.id]
        assert diffs[0].stored_status == "pending"
        assert diffs[0].computed_status == "pending_baseline"
        assert never_fetched.id not in [d.deployment_id for d in diffs]
        assert github.total_calls == calls

    async def test_each_deployment_recomputed_from_its_own_data(
        self, session, github, app, baseline, deployment
    ):
        second = gh_commit("d1", "2026-02-25T13:00:00Z", parents=["ccc"])
        merge = gh_commit(
            "ddd",
            "2026-02-25T15:00:00Z",
            message="Merge pull request #8 from acme/second",
            parents=["ccc", "d1"],
        )
        github.add_pull(
            gh_pull(8, merge_commit_sha="ddd"),
            commits=[second],
            reviews=[gh_review("reviewer-b", "2026-02-25T14:00:00Z")],
        )
        github.associate("d1", 8)
        github.associate("ddd", 8)
        github.compare("ccc", "ddd", [second, merge])
        later = await add_deployment(session, app, "ddd", at(16))
        service = VerificationService(session, github.client())
        for item in (baseline, deployment, later):
            await service.verify(item.id)

        assert await compute_verification_diffs(session, app.id) == []
        stored = await session.get(Deployment, later.id)
        assert stored.github_pr_number == 8
