"""
Verification decision engine.

Turns one immutable VerificationInput into one VerificationResult. Performs
no I/O; everything it needs is in the input.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from deploy_audit.core.logging import get_logger
from deploy_audit.services.verification.four_eyes import evaluate_four_eyes
from deploy_audit.services.verification.implicit_approval import (
    check_implicit_approval,
)
from deploy_audit.services.verification.matcher import matches_by_sha
from deploy_audit.services.verification.merge_commits import is_base_branch_merge
from deploy_audit.services.verification.types import (
    CURRENT_SCHEMA_VERSION,
    ApprovalDetails,
    ApprovalMethod,
    Commit,
    CommitInRange,
    DeployedPullRequest,
    ImplicitApprovalMode,
    PullRequestSnapshot,
    RepositoryStatus,
    UnverifiedCommit,
    UnverifiedReason,
    VerificationInput,
    VerificationResult,
    VerificationStatus,
)

logger = get_logger(__name__)


def verify_deployment(
    verification_input: VerificationInput, now: Optional[datetime] = None
) -> VerificationResult:
    """
    Compute the four-eyes verdict for a deployment.

    Steps, first terminal wins:
    1. repository not active -> unauthorized_repository
    2. no previous deployment -> pending_baseline
    3. empty commit range -> no_changes
    4. classify every commit in the range
    5. nothing unverified -> approved (pr_review)
    6. base-merge exception on the deployed PR -> approved (base_merge)
    7. implicit approval policy -> implicitly_approved
    8. otherwise -> unverified_commits
    """
    verified_at = now or datetime.now(timezone.utc)
    deployed_pr = verification_input.deployed_pr

    def result(
        status: VerificationStatus,
        has_four_eyes: bool,
        method: ApprovalMethod,
        reason: str,
        approvers: Tuple[str, ...] = (),
        unverified: Tuple[UnverifiedCommit, ...] = (),
    ) -> VerificationResult:
        return VerificationResult(
            has_four_eyes=has_four_eyes,
            status=status,
            deployed_pr=_summarize(deployed_pr),
            unverified_commits=unverified,
            approval_details=ApprovalDetails(
                method=method, approvers=approvers, reason=reason
            ),
            verified_at=verified_at,
            schema_version=CURRENT_SCHEMA_VERSION,
        )

    repository_status = verification_input.repository_status
    if repository_status != RepositoryStatus.ACTIVE:
        return result(
            VerificationStatus.UNAUTHORIZED_REPOSITORY,
            False,
            ApprovalMethod.NONE,
            f"Repository {verification_input.repository} has status "
            f"'{repository_status.value}', not 'active'",
        )

    if verification_input.previous_deployment is None:
        return result(
            VerificationStatus.PENDING_BASELINE,
            False,
            ApprovalMethod.PENDING_BASELINE,
            "First deployment - no previous deployment to compare against",
        )

    if not verification_input.commits:
        return result(
            VerificationStatus.NO_CHANGES,
            True,
            ApprovalMethod.NO_CHANGES,
            "No new commits since previous deployment",
        )

    unverified = find_unverified_commits(verification_input)

    if not unverified:
        approvers = deployed_pr.approvers if deployed_pr else ()
        return result(
            VerificationStatus.APPROVED,
            True,
            ApprovalMethod.PR_REVIEW,
            f"All {len(verification_input.commits)} commit(s) verified via PR review",
            approvers=approvers,
        )

    if deployed_pr is not None:
        merge_sha = _base_merge_explaining(
            deployed_pr, [commit for commit, _ in unverified], verification_input.base_branch
        )
        if merge_sha:
            return result(
                VerificationStatus.APPROVED,
                True,
                ApprovalMethod.BASE_MERGE,
                f"approved_with_base_merge:{merge_sha}",
                approvers=deployed_pr.approvers,
            )

        mode = verification_input.implicit_approval_mode
        if mode != ImplicitApprovalMode.OFF:
            last_commit_author = deployed_pr.commits[-1].author if deployed_pr.commits else ""
            implicit = check_implicit_approval(
                mode,
                pr_author=deployed_pr.author,
                last_commit_author=last_commit_author,
                merged_by=deployed_pr.merged_by,
                commit_authors=[c.author for c in deployed_pr.commits],
            )
            if implicit.qualifies:
                return result(
                    VerificationStatus.IMPLICITLY_APPROVED,
                    True,
                    ApprovalMethod.IMPLICIT,
                    implicit.reason,
                    approvers=(deployed_pr.merged_by or "",),
                )

    items = tuple(item for _, item in unverified)
    return result(
        VerificationStatus.UNVERIFIED_COMMITS,
        False,
        ApprovalMethod.NONE,
        f"{len(items)} commit(s) not verified",
        unverified=items,
    )


def find_unverified_commits(
    verification_input: VerificationInput,
) -> List[Tuple[Commit, UnverifiedCommit]]:
    """
    Classify every commit in the range.

    Returns:
        Unverified commits in range order, each paired with its source commit.
    """
    deployed_pr = verification_input.deployed_pr
    base_branch = verification_input.base_branch
    unverified: List[Tuple[Commit, UnverifiedCommit]] = []

    deployed_outcome = None
    if deployed_pr is not None:
        deployed_outcome = evaluate_four_eyes(
            deployed_pr.reviews, deployed_pr.commits, base_branch, deployed_pr.merged_by
        )

    for entry in verification_input.commits:
        commit = entry.commit
        in_deployed_pr = _belongs_to_deployed_pr(entry, deployed_pr)

        if commit.is_merge:
            if is_base_branch_merge(commit.message, base_branch):
                continue
            if not in_deployed_pr and entry.pull_request is None:
                # Unrecognized merge with no review trail may carry arbitrary changes.
                unverified.append(
                    (commit, _unverified(commit, UnverifiedReason.NO_PR, None))
                )
            continue

        if in_deployed_pr:
            if deployed_outcome.has_four_eyes:
                continue
            unverified.append(
                (
                    commit,
                    _unverified(
                        commit, _reason_code(deployed_outcome.reason_code), deployed_pr.number
                    ),
                )
            )
            continue

        own_pr = entry.pull_request
        if own_pr is not None:
            outcome = evaluate_four_eyes(own_pr.reviews, own_pr.commits, base_branch)
            if outcome.has_four_eyes:
                continue
            unverified.append(
                (commit, _unverified(commit, _reason_code(outcome.reason_code), own_pr.number))
            )
            continue

        unverified.append((commit, _unverified(commit, UnverifiedReason.NO_PR, None)))

    return unverified


def _belongs_to_deployed_pr(
    entry: CommitInRange, deployed_pr: Optional[PullRequestSnapshot]
) -> bool:
    if deployed_pr is None:
        return False
    if matches_by_sha(entry.commit.sha, deployed_pr) is not None:
        return True
    own_pr = entry.pull_request
    return own_pr is not None and own_pr.number == deployed_pr.number


def _base_merge_explaining(
    deployed_pr: PullRequestSnapshot, unverified: List[Commit], base_branch: str
) -> Optional[str]:
    """
    Return the sha of the base merge that explains all unverified commits.

    Commits brought in by merging the base branch into the PR predate that
    merge; if every unverified commit does, the approval stands.
    """
    if not deployed_pr.approvers:
        return None

    for merge_commit in deployed_pr.commits:
        if not is_base_branch_merge(merge_commit.message, base_branch):
            continue
        if all(
            commit.recorded_at < merge_commit.recorded_at
            for commit in unverified
            if commit.sha != merge_commit.sha
        ):
            return merge_commit.sha
        logger.debug("Base merge %s does not cover every unverified commit", merge_commit.sha[:7])
    return None


def _reason_code(code: Optional[UnverifiedReason]) -> UnverifiedReason:
    if code is None:
        return UnverifiedReason.PR_NOT_APPROVED
    if code == UnverifiedReason.PR_NOT_APPROVED:
        logger.warning("Unverified commit with unspecific reason %s", code.value)
    return code


def _unverified(
    commit: Commit, reason: UnverifiedReason, pr_number: Optional[int]
) -> UnverifiedCommit:
    return UnverifiedCommit(
        sha=commit.sha,
        message=commit.first_line,
        author=commit.author,
        date=commit.authored_at,
        url=commit.url,
        pr_number=pr_number,
        reason=reason,
    )


def _summarize(pr: Optional[PullRequestSnapshot]) -> Optional[DeployedPullRequest]:
    if pr is None:
        return None
    return DeployedPullRequest(number=pr.number, url=pr.url, title=pr.title, author=pr.author)
