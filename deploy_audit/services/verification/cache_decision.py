"""
Trust rules for cached per-commit verdicts.
"""

from enum import Enum
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence

from deploy_audit.services.verification.types import UnverifiedReason


class CacheDecision(str, Enum):
    SKIP_VERIFIED = "skip_verified"
    ADD_UNVERIFIED = "add_unverified"
    RECHECK = "recheck"


class CachedCommitVerdict(NamedTuple):
    approved: Optional[bool] = None
    reason: Optional[str] = None


def decide_commit_cache_action(
    cached: Optional[CachedCommitVerdict], force_recheck: bool = False
) -> CacheDecision:
    """
    Decide whether a cached verdict for a commit can be reused.

    Positive verdicts are trusted. Negative verdicts are trusted too, except
    `no_pr`: improved matching (e.g. rebase detection) may later associate
    the commit with a pull request.
    """
    if force_recheck:
        return CacheDecision.RECHECK
    if cached is None or cached.approved is None:
        return CacheDecision.RECHECK
    if cached.approved:
        return CacheDecision.SKIP_VERIFIED
    if cached.reason and cached.reason != UnverifiedReason.NO_PR.value:
        return CacheDecision.ADD_UNVERIFIED
    return CacheDecision.RECHECK


def triage_commits(
    shas: Sequence[str],
    cache: Mapping[str, CachedCommitVerdict],
    force_recheck: bool = False,
) -> Dict[CacheDecision, List[str]]:
    """Group commit shas by what to do with their cached verdict."""
    groups: Dict[CacheDecision, List[str]] = {decision: [] for decision in CacheDecision}
    for sha in shas:
        groups[decide_commit_cache_action(cache.get(sha), force_recheck)].append(sha)
    return groups
