"""
Verification Run Model

Append-only history of verification verdicts for a deployment, retaining the
full result payload and the snapshots it was computed from.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

from deploy_audit.db.types import JSONType


class VerificationRunBase(SQLModel):
    deployment_id: int = Field(foreign_key="deployment.id", index=True)
    schema_version: int = Field(description="Result schema version")
    status: str = Field(sa_column=Column(String, nullable=False))
    has_four_eyes: Optional[bool] = Field(default=None)
    change_source: str = Field(
        default="verification", description="What triggered the run"
    )


class VerificationRun(VerificationRunBase, table=True):
    __tablename__ = "verification_run"

    id: Optional[int] = Field(default=None, primary_key=True)
    run_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    result: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONType, nullable=False),
        description="Serialized VerificationResult",
    )
    snapshot_ids: List[int] = Field(
        default_factory=list,
        sa_column=Column(JSONType, nullable=False),
        description="github_snapshot rows used as input",
    )

    def to_public(self) -> "VerificationRunPublic":
        return VerificationRunPublic.model_validate(self, from_attributes=True)


class VerificationRunPublic(VerificationRunBase):
    id: int
    run_at: datetime
    result: Dict[str, Any] = {}
