"""
Monitored Application Models

An application deployed to one environment, with its four-eyes policy and
the repositories it is allowed to deploy from.
Key: (team_slug, environment_name, app_name)
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from deploy_audit.services.verification.types import (
    ImplicitApprovalMode,
    RepositoryStatus,
)


class MonitoredApplication(SQLModel, table=True):
    __tablename__ = "monitored_application"

    id: Optional[int] = Field(default=None, primary_key=True)
    team_slug: str = Field(index=True, description="Owning team")
    environment_name: str = Field(index=True, description="Deployment environment")
    app_name: str = Field(index=True, description="Application name")
    default_branch: str = Field(
        default="main", description="Branch deployments are expected to come from"
    )
    audit_start_year: Optional[int] = Field(
        default=None,
        description="Deployments before this year are out of audit scope",
    )
    implicit_approval_mode: str = Field(
        default=ImplicitApprovalMode.OFF.value,
        sa_column=Column(String, nullable=False, default=ImplicitApprovalMode.OFF.value),
        description="Implicit approval policy: off, dependabot_only or all",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    __table_args__ = (
        UniqueConstraint(
            "team_slug", "environment_name", "app_name", name="uq_monitored_application"
        ),
    )


class ApplicationRepository(SQLModel, table=True):
    """
    Repository an application deploys from, with its authorization status.
    """

    __tablename__ = "application_repository"

    id: Optional[int] = Field(default=None, primary_key=True)
    monitored_app_id: int = Field(foreign_key="monitored_application.id", index=True)
    owner: str = Field(description="Repository owner")
    repo: str = Field(description="Repository name")
    status: str = Field(
        default=RepositoryStatus.PENDING_APPROVAL.value,
        sa_column=Column(
            String, nullable=False, default=RepositoryStatus.PENDING_APPROVAL.value
        ),
        description="active, pending_approval or historical",
    )

    __table_args__ = (
        UniqueConstraint(
            "monitored_app_id", "owner", "repo", name="uq_application_repository"
        ),
    )
