"""
Deployment Status Transition Model

Audit trail of four-eyes status/flag changes on a deployment.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class DeploymentStatusTransition(SQLModel, table=True):
    __tablename__ = "deployment_status_transition"

    id: Optional[int] = Field(default=None, primary_key=True)
    deployment_id: int = Field(foreign_key="deployment.id", index=True)
    from_status: Optional[str] = Field(default=None)
    to_status: str
    from_has_four_eyes: Optional[bool] = Field(default=None)
    to_has_four_eyes: Optional[bool] = Field(default=None)
    change_source: str = Field(default="verification")
    changed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
