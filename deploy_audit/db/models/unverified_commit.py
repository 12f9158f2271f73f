"""
Unverified Commit Model

Append-only rows itemizing the commits a verification run could not verify.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class UnverifiedCommitRecord(SQLModel, table=True):
    __tablename__ = "unverified_commit"

    id: Optional[int] = Field(default=None, primary_key=True)
    deployment_id: int = Field(foreign_key="deployment.id", index=True)
    verification_run_id: int = Field(foreign_key="verification_run.id", index=True)
    sha: str
    message: str = ""
    author: str = ""
    commit_date: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    url: str = ""
    pr_number: Optional[int] = Field(default=None)
    reason: str = Field(description="Unverified reason code")
