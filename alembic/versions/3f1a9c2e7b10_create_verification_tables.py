"""create verification tables

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-18 09:12:44.118203

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3f1a9c2e7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "monitored_application",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("team_slug", sa.String(), nullable=False),
        sa.Column("environment_name", sa.String(), nullable=False),
        sa.Column("app_name", sa.String(), nullable=False),
        sa.Column("default_branch", sa.String(), nullable=False),
        sa.Column("audit_start_year", sa.Integer(), nullable=True),
        sa.Column("implicit_approval_mode", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "team_slug", "environment_name", "app_name", name="uq_monitored_application"
        ),
    )
    op.create_index("ix_monitored_application_team_slug", "monitored_application", ["team_slug"])
    op.create_index(
        "ix_monitored_application_environment_name",
        "monitored_application",
        ["environment_name"],
    )
    op.create_index("ix_monitored_application_app_name", "monitored_application", ["app_name"])

    op.create_table(
        "application_repository",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "monitored_app_id",
            sa.Integer(),
            sa.ForeignKey("monitored_application.id"),
            nullable=False,
        ),
        sa.Column("owner", sa.String(), nullable=False),
        sa.Column("repo", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.UniqueConstraint(
            "monitored_app_id", "owner", "repo", name="uq_application_repository"
        ),
    )
    op.create_index(
        "ix_application_repository_monitored_app_id",
        "application_repository",
        ["monitored_app_id"],
    )

    op.create_table(
        "deployment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "monitored_app_id",
            sa.Integer(),
            sa.ForeignKey("monitored_application.id"),
            nullable=False,
        ),
        sa.Column("environment_name", sa.String(), nullable=False),
        sa.Column("commit_sha", sa.String(), nullable=True),
        sa.Column("owner", sa.String(), nullable=True),
        sa.Column("repo", sa.String(), nullable=True),
        sa.Column("deployer", sa.String(), nullable=True),
        sa.Column("four_eyes_status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("has_four_eyes", sa.Boolean(), nullable=True),
        sa.Column("github_pr_number", sa.Integer(), nullable=True),
        sa.Column("github_pr_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_deployment_monitored_app_id", "deployment", ["monitored_app_id"])
    op.create_index("ix_deployment_environment_name", "deployment", ["environment_name"])
    op.create_index("ix_deployment_commit_sha", "deployment", ["commit_sha"])
    op.create_index("ix_deployment_four_eyes_status", "deployment", ["four_eyes_status"])
    op.create_index("ix_deployment_created_at", "deployment", ["created_at"])

    op.create_table(
        "verification_run",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("deployment_id", sa.Integer(), sa.ForeignKey("deployment.id"), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("has_four_eyes", sa.Boolean(), nullable=True),
        sa.Column("change_source", sa.String(), nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("result", postgresql.JSONB(), nullable=False),
        sa.Column("snapshot_ids", postgresql.JSONB(), nullable=False),
    )
    op.create_index("ix_verification_run_deployment_id", "verification_run", ["deployment_id"])
    op.create_index("ix_verification_run_run_at", "verification_run", ["run_at"])

    op.create_table(
        "unverified_commit",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("deployment_id", sa.Integer(), sa.ForeignKey("deployment.id"), nullable=False),
        sa.Column(
            "verification_run_id",
            sa.Integer(),
            sa.ForeignKey("verification_run.id"),
            nullable=False,
        ),
        sa.Column("sha", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("author", sa.String(), nullable=False),
        sa.Column("commit_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("pr_number", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(), nullable=False),
    )
    op.create_index("ix_unverified_commit_deployment_id", "unverified_commit", ["deployment_id"])
    op.create_index(
        "ix_unverified_commit_verification_run_id", "unverified_commit", ["verification_run_id"]
    )

    op.create_table(
        "deployment_status_transition",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("deployment_id", sa.Integer(), sa.ForeignKey("deployment.id"), nullable=False),
        sa.Column("from_status", sa.String(), nullable=True),
        sa.Column("to_status", sa.String(), nullable=False),
        sa.Column("from_has_four_eyes", sa.Boolean(), nullable=True),
        sa.Column("to_has_four_eyes", sa.Boolean(), nullable=True),
        sa.Column("change_source", sa.String(), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_deployment_status_transition_deployment_id",
        "deployment_status_transition",
        ["deployment_id"],
    )

    op.create_table(
        "github_snapshot",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner", sa.String(), nullable=False),
        sa.Column("repo", sa.String(), nullable=False),
        sa.Column("subject", sa.String(), nullable=False),
        sa.Column("data_kind", sa.String(), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("available", sa.Boolean(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_github_snapshot_lookup",
        "github_snapshot",
        ["owner", "repo", "subject", "data_kind", "schema_version"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_github_snapshot_lookup", table_name="github_snapshot")
    op.drop_table("github_snapshot")
    op.drop_table("deployment_status_transition")
    op.drop_table("unverified_commit")
    op.drop_table("verification_run")
    op.drop_table("deployment")
    op.drop_table("application_repository")
    op.drop_table("monitored_application")
