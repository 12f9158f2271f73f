"""
Four-eyes evaluation for a single pull request.
"""

from datetime import datetime
from typing import NamedTuple, Optional, Sequence, Tuple

from deploy_audit.core.logging import get_logger
from deploy_audit.services.verification.merge_commits import is_base_branch_merge
from deploy_audit.services.verification.types import (
    Commit,
    Review,
    ReviewState,
    UnverifiedReason,
)

logger = get_logger(__name__)


class FourEyesOutcome(NamedTuple):
    has_four_eyes: bool
    reason: str
    reason_code: Optional[UnverifiedReason] = None


def last_substantive_commit(
    commits: Sequence[Commit], base_branch: str
) -> Tuple[Commit, int]:
    """
    Find the last commit that is not a base-branch merge.

    Returns:
        (commit, number of trailing base merges skipped). Falls back to the
        literal last commit when every commit is a base merge.
    """
    for index in range(len(commits) - 1, -1, -1):
        if not is_base_branch_merge(commits[index].message, base_branch):
            return commits[index], len(commits) - 1 - index
    return commits[-1], 0


def latest_change_at(commits: Sequence[Commit], base_branch: str) -> datetime:
    """
    Latest recorded timestamp over the commits that are not base-branch merges.

    List position says nothing about push order: GitHub sorts PR commits by
    author date, which the committer controls.
    """
    substantive = [c for c in commits if not is_base_branch_merge(c.message, base_branch)]
    return max(c.recorded_at for c in substantive or commits)


def evaluate_four_eyes(
    reviews: Sequence[Review],
    commits: Sequence[Commit],
    base_branch: str,
    merged_by: Optional[str] = None,
) -> FourEyesOutcome:
    """
    Decide whether a pull request was approved after its last real change.

    Ordering uses each commit's recorded (committer) timestamp; the author
    timestamp can be set to anything by whoever creates the commit.

    Args:
        reviews: All reviews on the PR.
        commits: The PR's commits in GitHub's (author-date) order.
        base_branch: Branch the PR targets.
        merged_by: Who merged the PR. Pass None to disable the
            validating-merger exception.
    """
    if not commits:
        logger.warning("Four-eyes evaluation on a pull request without commits")
        return FourEyesOutcome(
            False, "No commits found in PR", UnverifiedReason.PR_NOT_APPROVED
        )

    _, skipped = last_substantive_commit(commits, base_branch)
    last_change = latest_change_at(commits, base_branch)
    approvals = [r for r in reviews if r.state == ReviewState.APPROVED]

    for review in approvals:
        if review.submitted_at and review.submitted_at > last_change:
            if skipped:
                reason = (
                    f"Approved by {review.reviewer} "
                    f"(after ignoring {skipped} base-merge commit(s))"
                )
            else:
                reason = f"Approved by {review.reviewer} after last commit"
            return FourEyesOutcome(True, reason)

    if approvals and merged_by:
        commit_authors = {c.author.lower() for c in commits}
        if merged_by.lower() not in commit_authors:
            return FourEyesOutcome(
                True,
                f"Approved by {approvals[0].reviewer} (before last commit), "
                f"merged by {merged_by} who is not a commit author",
            )

    if not approvals:
        return FourEyesOutcome(
            False, "No approved reviews", UnverifiedReason.NO_APPROVED_REVIEWS
        )

    return FourEyesOutcome(
        False,
        "Approval was given before the last commit",
        UnverifiedReason.APPROVAL_BEFORE_LAST_COMMIT,
    )
