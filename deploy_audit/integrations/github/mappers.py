"""
Map GitHub REST payloads onto verification types.
"""

from typing import Any, Dict, Iterable, Optional

from deploy_audit.services.verification.types import (
    Commit,
    PullRequestSnapshot,
    Review,
)


def _login(user: Optional[Dict[str, Any]]) -> Optional[str]:
    return (user or {}).get("login")


def to_commit(item: Dict[str, Any]) -> Commit:
    """
    Map a commit from the compare or PR-commits endpoints.

    The committer date falls back to the author date; the merge flag comes
    from the parent count.
    """
    git_commit = item.get("commit") or {}
    git_author = git_commit.get("author") or {}
    git_committer = git_commit.get("committer") or {}
    parents = tuple(p["sha"] for p in item.get("parents") or [])

    return Commit(
        sha=item["sha"],
        message=git_commit.get("message") or "",
        author=_login(item.get("author")) or git_author.get("name") or "",
        authored_at=git_author.get("date") or git_committer.get("date"),
        committed_at=git_committer.get("date") or git_author.get("date"),
        is_merge=len(parents) > 1,
        parent_shas=parents,
        url=item.get("html_url") or "",
    )


def to_review(item: Dict[str, Any]) -> Review:
    return Review(
        id=item["id"],
        reviewer=_login(item.get("user")) or "",
        state=item["state"],
        submitted_at=item.get("submitted_at"),
    )


def to_pull_request_metadata(item: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep the PR fields the verification needs.

    `merge_commit_sha` is only meaningful once merged; before that GitHub
    reports its test-merge commit there.
    """
    merged = bool(item.get("merged_at")) or bool(item.get("merged"))
    return {
        "number": item["number"],
        "title": item.get("title") or "",
        "url": item.get("html_url") or "",
        "base_branch": (item.get("base") or {}).get("ref") or "",
        "base_sha": (item.get("base") or {}).get("sha") or "",
        "head_sha": (item.get("head") or {}).get("sha") or "",
        "merge_commit_sha": item.get("merge_commit_sha") if merged else None,
        "author": _login(item.get("user")) or "",
        "merged_by": _login(item.get("merged_by")),
    }


def to_pull_request_snapshot(
    metadata: Dict[str, Any],
    reviews: Iterable[Review],
    commits: Iterable[Commit],
) -> PullRequestSnapshot:
    return PullRequestSnapshot(
        **metadata,
        reviews=tuple(reviews),
        commits=tuple(commits),
    )
