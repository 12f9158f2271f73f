"""
Application policy models.

Parsed from the policy YAML, not database tables.
"""

from typing import Optional, Tuple

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from deploy_audit.services.verification.types import (
    ImplicitApprovalMode,
    RepositoryStatus,
)


class RepositoryPolicy(SQLModel):
    name: str = Field(description="Repository as owner/repo")
    status: RepositoryStatus = Field(default=RepositoryStatus.ACTIVE)

    @property
    def owner(self) -> str:
        return self.name.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.name.split("/", 1)[1]


class ApplicationPolicy(SQLModel):
    """Four-eyes policy for one application in one environment."""

    team: str = Field(description="Owning team slug")
    environment: str = Field(description="Deployment environment")
    app: str = Field(description="Application name")
    default_branch: str = Field(default="main")
    audit_start_year: Optional[int] = Field(default=None)
    implicit_approval_mode: ImplicitApprovalMode = Field(default=ImplicitApprovalMode.OFF)
    repositories: Tuple[RepositoryPolicy, ...] = Field(default_factory=tuple)

    @field_validator("implicit_approval_mode", mode="before")
    @classmethod
    def _yaml_off(cls, value):
        # YAML 1.1 reads a bare `off` as False
        if value is False:
            return ImplicitApprovalMode.OFF
        return value
