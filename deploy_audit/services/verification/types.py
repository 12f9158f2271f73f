"""
Verification domain types.

Immutable input/output models for the four-eyes decision engine, plus the
closed sets (statuses, reason codes, approval methods, policy modes) it works
over. Pure data model with no service imports.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

CURRENT_SCHEMA_VERSION = 1


class VerificationStatus(str, Enum):
    """Terminal verification status of a deployment."""

    UNAUTHORIZED_REPOSITORY = "unauthorized_repository"
    PENDING_BASELINE = "pending_baseline"
    NO_CHANGES = "no_changes"
    APPROVED = "approved"
    IMPLICITLY_APPROVED = "implicitly_approved"
    UNVERIFIED_COMMITS = "unverified_commits"
    MANUALLY_APPROVED = "manually_approved"
    LEGACY = "legacy"
    ERROR = "error"


# Statuses set by people; automated verification must never overwrite them.
PROTECTED_STATUSES: Tuple[str, ...] = (
    VerificationStatus.MANUALLY_APPROVED.value,
    VerificationStatus.LEGACY.value,
)


class UnverifiedReason(str, Enum):
    """Why a commit in the deployed range could not be verified."""

    NO_PR = "no_pr"
    NO_APPROVED_REVIEWS = "no_approved_reviews"
    APPROVAL_BEFORE_LAST_COMMIT = "approval_before_last_commit"
    PR_NOT_APPROVED = "pr_not_approved"


class ApprovalMethod(str, Enum):
    PR_REVIEW = "pr_review"
    IMPLICIT = "implicit"
    BASE_MERGE = "base_merge"
    NO_CHANGES = "no_changes"
    PENDING_BASELINE = "pending_baseline"
    NONE = "none"


class ImplicitApprovalMode(str, Enum):
    """Org-configurable policy for merges that count as approved."""

    OFF = "off"
    DEPENDABOT_ONLY = "dependabot_only"
    ALL = "all"


class RepositoryStatus(str, Enum):
    """Authorization status of a repository for a monitored application."""

    ACTIVE = "active"
    PENDING_APPROVAL = "pending_approval"
    HISTORICAL = "historical"
    UNKNOWN = "unknown"


class ReviewState(str, Enum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    PENDING = "PENDING"
    DISMISSED = "DISMISSED"


class MatchMethod(str, Enum):
    """How a commit was associated with a pull request."""

    SHA = "sha"
    MERGE_COMMIT_SHA = "merge_commit_sha"
    METADATA = "metadata"


# -----------------------------------------------------------------------------
# Source control data
# -----------------------------------------------------------------------------
class Commit(BaseModel):
    """A commit as observed from source control."""

    model_config = ConfigDict(frozen=True)

    sha: str = Field(description="Commit SHA")
    message: str = Field(default="", description="Commit message")
    author: str = Field(default="", description="Author username")
    authored_at: datetime = Field(description="Author-supplied timestamp")
    committed_at: Optional[datetime] = Field(
        default=None, description="Timestamp assigned when the commit object was created"
    )
    is_merge: bool = Field(default=False, description="True for commits with 2+ parents")
    parent_shas: Tuple[str, ...] = Field(default_factory=tuple)
    url: str = Field(default="", description="HTML URL of the commit")

    @property
    def first_line(self) -> str:
        return self.message.split("\n", 1)[0].strip()

    @property
    def recorded_at(self) -> datetime:
        """Committer timestamp when known, else the author timestamp."""
        return self.committed_at or self.authored_at


class Review(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    reviewer: str = Field(description="Reviewer username")
    state: ReviewState
    submitted_at: Optional[datetime] = Field(
        default=None, description="Absent for PENDING reviews"
    )


class PullRequestSnapshot(BaseModel):
    """
    Read-only projection of a pull request.

    Fetched once and reused for the duration of one verification run.
    """

    model_config = ConfigDict(frozen=True)

    number: int
    title: str = ""
    url: str = ""
    base_branch: str
    base_sha: str = ""
    head_sha: str = ""
    merge_commit_sha: Optional[str] = None
    author: str = ""
    merged_by: Optional[str] = None
    commits: Tuple[Commit, ...] = Field(default_factory=tuple)
    reviews: Tuple[Review, ...] = Field(default_factory=tuple)

    @property
    def approvers(self) -> Tuple[str, ...]:
        """Distinct usernames with an APPROVED review, in submission order."""
        seen: Dict[str, None] = {}
        for review in self.reviews:
            if review.state == ReviewState.APPROVED:
                seen.setdefault(review.reviewer, None)
        return tuple(seen)

    def contains_sha(self, sha: str) -> bool:
        return sha == self.merge_commit_sha or any(c.sha == sha for c in self.commits)


class CommitInRange(BaseModel):
    """A commit between the previous and current deployment."""

    model_config = ConfigDict(frozen=True)

    commit: Commit
    pull_request: Optional[PullRequestSnapshot] = None
    match_method: Optional[MatchMethod] = None


class PreviousDeployment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    commit_sha: str
    created_at: datetime


class VerificationInput(BaseModel):
    """Complete, self-contained evidence for one deployment decision."""

    model_config = ConfigDict(frozen=True)

    deployment_id: Optional[int] = None
    commit_sha: str
    owner: str
    repo: str
    environment_name: str = ""
    base_branch: str = "main"
    repository_status: RepositoryStatus = RepositoryStatus.ACTIVE
    previous_deployment: Optional[PreviousDeployment] = None
    deployed_pr: Optional[PullRequestSnapshot] = None
    commits: Tuple[CommitInRange, ...] = Field(default_factory=tuple)
    implicit_approval_mode: ImplicitApprovalMode = ImplicitApprovalMode.OFF

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"


# -----------------------------------------------------------------------------
# Verdict
# -----------------------------------------------------------------------------
class DeployedPullRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    url: str
    title: str
    author: str


class UnverifiedCommit(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    message: str
    author: str
    date: datetime
    url: str = ""
    pr_number: Optional[int] = None
    reason: UnverifiedReason


class ApprovalDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: ApprovalMethod
    approvers: Tuple[str, ...] = Field(default_factory=tuple)
    reason: str = ""


class VerificationResult(BaseModel):
    """Verdict for one deployment. A new evaluation produces a new result."""

    model_config = ConfigDict(frozen=True)

    has_four_eyes: bool
    status: VerificationStatus
    deployed_pr: Optional[DeployedPullRequest] = None
    unverified_commits: Tuple[UnverifiedCommit, ...] = Field(default_factory=tuple)
    approval_details: ApprovalDetails
    verified_at: datetime
    schema_version: int = CURRENT_SCHEMA_VERSION
