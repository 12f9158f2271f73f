"""
Deployment Model

One deployment of a commit to an application environment, carrying the
current four-eyes verdict.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

PENDING_STATUS = "pending"


# -----------------------------------------------------------------------------
# Base
# -----------------------------------------------------------------------------
class DeploymentBase(SQLModel):
    """Shared fields for Deployment."""

    monitored_app_id: int = Field(foreign_key="monitored_application.id", index=True)
    environment_name: str = Field(index=True)
    commit_sha: Optional[str] = Field(
        default=None, index=True, description="Deployed commit; may be missing"
    )
    owner: Optional[str] = Field(default=None, description="Repository owner")
    repo: Optional[str] = Field(default=None, description="Repository name")
    deployer: Optional[str] = Field(default=None)
    four_eyes_status: str = Field(
        default=PENDING_STATUS,
        sa_column=Column(String, nullable=False, default=PENDING_STATUS, index=True),
    )
    has_four_eyes: Optional[bool] = Field(
        default=None, description="Null until verified or when undecidable"
    )
    github_pr_number: Optional[int] = Field(default=None)
    github_pr_url: Optional[str] = Field(default=None)


# -----------------------------------------------------------------------------
# ORM Model (Database layer)
# -----------------------------------------------------------------------------
class Deployment(DeploymentBase, table=True):
    __tablename__ = "deployment"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )

    def to_public(self) -> "DeploymentPublic":
        """Convert to response DTO."""
        return DeploymentPublic.model_validate(self, from_attributes=True)


# -----------------------------------------------------------------------------
# Public (Response/Read layer)
# -----------------------------------------------------------------------------
class DeploymentPublic(DeploymentBase):
    id: int
    created_at: datetime
