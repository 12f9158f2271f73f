"""
Commit to pull request association.

A deployed commit can reach the base branch in three ways, each leaving a
different trace:

- merge commit: the original commit shas are in the PR's commit list;
- squash merge: GitHub mints a new sha, recorded as the PR's merge-commit sha;
- rebase merge: every sha changes, but author, author date and message
  survive, so the commit is matched on that metadata.
"""

from typing import Iterable, List, NamedTuple, Optional

from deploy_audit.services.verification.types import (
    Commit,
    MatchMethod,
    PullRequestSnapshot,
)

# Rebased commits keep the author date; allow for sub-second rounding only.
METADATA_MATCH_WINDOW_MS = 1000


class PullRequestMatch(NamedTuple):
    pull_request: PullRequestSnapshot
    method: MatchMethod


def matches_by_metadata(commit: Commit, candidate: Commit) -> bool:
    """True if `candidate` is `commit` replayed under a different sha."""
    if commit.author.lower() != candidate.author.lower():
        return False
    delta = abs((commit.authored_at - candidate.authored_at).total_seconds()) * 1000
    if delta >= METADATA_MATCH_WINDOW_MS:
        return False
    return commit.first_line == candidate.first_line


def matches_by_sha(sha: str, pull_request: PullRequestSnapshot) -> Optional[MatchMethod]:
    """Sha or merge-commit-sha match against a single pull request."""
    if any(c.sha == sha for c in pull_request.commits):
        return MatchMethod.SHA
    if pull_request.merge_commit_sha and pull_request.merge_commit_sha == sha:
        return MatchMethod.MERGE_COMMIT_SHA
    return None


def find_pull_request(
    commit: Commit,
    candidates: Iterable[PullRequestSnapshot],
    base_branch: str,
) -> Optional[PullRequestMatch]:
    """
    Resolve which pull request, if any, a commit belongs to.

    Only candidates targeting `base_branch` are eligible: a PR into some
    feature branch may contain the commit, but its review does not cover
    the later merge into the tracked branch.

    Precedence across all eligible candidates, first hit wins:
    direct sha, merge-commit sha, then metadata equivalence.

    Returns:
        The matching pull request and how it matched, or None (no_pr).
    """
    eligible: List[PullRequestSnapshot] = [
        pr for pr in candidates if pr.base_branch == base_branch
    ]

    for pr in eligible:
        if any(c.sha == commit.sha for c in pr.commits):
            return PullRequestMatch(pr, MatchMethod.SHA)

    for pr in eligible:
        if pr.merge_commit_sha and pr.merge_commit_sha == commit.sha:
            return PullRequestMatch(pr, MatchMethod.MERGE_COMMIT_SHA)

    for pr in eligible:
        if any(matches_by_metadata(commit, c) for c in pr.commits):
            return PullRequestMatch(pr, MatchMethod.METADATA)

    return None
