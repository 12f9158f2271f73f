"""
Implicit approval policies.

Some organizations accept certain merges as approved without an explicit
post-commit review, e.g. a human merging a dependency-bot PR.
"""

from typing import Iterable, NamedTuple, Optional, assert_never

from deploy_audit.services.verification.types import ImplicitApprovalMode

DEPENDABOT_LOGIN = "dependabot[bot]"
# Commit authors from dependabot show up with or without the [bot] suffix.
DEPENDABOT_COMMIT_AUTHORS = frozenset({"dependabot[bot]", "dependabot"})


class ImplicitApprovalOutcome(NamedTuple):
    qualifies: bool
    reason: str


def check_implicit_approval(
    mode: ImplicitApprovalMode,
    pr_author: str,
    last_commit_author: str,
    merged_by: Optional[str],
    commit_authors: Iterable[str],
) -> ImplicitApprovalOutcome:
    """
    Evaluate the configured implicit-approval policy for a merged PR.

    All username comparisons are case-insensitive. An unknown merger never
    qualifies.
    """
    creator = pr_author.lower()
    merger = (merged_by or "").lower()

    if mode == ImplicitApprovalMode.OFF:
        return ImplicitApprovalOutcome(False, "Implicit approval is disabled")

    elif mode == ImplicitApprovalMode.DEPENDABOT_ONLY:
        if creator != DEPENDABOT_LOGIN:
            return ImplicitApprovalOutcome(False, "PR was not created by Dependabot")
        if not all(a.lower() in DEPENDABOT_COMMIT_AUTHORS for a in commit_authors):
            return ImplicitApprovalOutcome(
                False, "PR contains commits not authored by Dependabot"
            )
        if not merger or merger == creator:
            return ImplicitApprovalOutcome(False, "PR was not merged by a person")
        return ImplicitApprovalOutcome(
            True, f"Dependabot PR merged by {merged_by}"
        )

    elif mode == ImplicitApprovalMode.ALL:
        if not merger:
            return ImplicitApprovalOutcome(False, "PR merger is unknown")
        if merger == creator:
            return ImplicitApprovalOutcome(False, "PR was merged by its creator")
        if merger == last_commit_author.lower():
            return ImplicitApprovalOutcome(
                False, "PR was merged by the author of the last commit"
            )
        return ImplicitApprovalOutcome(
            True,
            f"Merged by {merged_by}, who neither created the PR "
            "nor authored the last commit",
        )

    else:
        assert_never(mode)
