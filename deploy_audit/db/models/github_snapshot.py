"""
GitHub Snapshot Model

Versioned, append-only store of data fetched from GitHub.
Key: (owner, repo, subject, data_kind, schema_version); newest row wins.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field, SQLModel

from deploy_audit.db.types import JSONType


class SnapshotKind(str, Enum):
    PR_METADATA = "pr_metadata"
    PR_REVIEWS = "pr_reviews"
    PR_COMMITS = "pr_commits"
    COMMIT_PRS = "commit_prs"
    COMMIT_VERDICT = "commit_verdict"
    COMPARE = "compare"


class GithubSnapshot(SQLModel, table=True):
    __tablename__ = "github_snapshot"

    id: Optional[int] = Field(default=None, primary_key=True)
    owner: str
    repo: str
    subject: str = Field(description="pr:<number>, commit:<sha> or compare:<base>...<head>")
    data_kind: str
    schema_version: int
    available: bool = Field(
        default=True, description="False when GitHub no longer has the data"
    )
    data: Any = Field(default=None, sa_column=Column(JSONType, nullable=True))
    fetched_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    __table_args__ = (
        Index(
            "ix_github_snapshot_lookup",
            "owner",
            "repo",
            "subject",
            "data_kind",
            "schema_version",
        ),
    )
