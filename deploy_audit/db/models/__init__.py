"""
Database models package.
"""

from deploy_audit.db.models.monitored_application import (
    ApplicationRepository,
    MonitoredApplication,
)
from deploy_audit.db.models.deployment import Deployment, DeploymentPublic
from deploy_audit.db.models.verification_run import (
    VerificationRun,
    VerificationRunPublic,
)
from deploy_audit.db.models.unverified_commit import UnverifiedCommitRecord
from deploy_audit.db.models.status_transition import DeploymentStatusTransition
from deploy_audit.db.models.github_snapshot import GithubSnapshot, SnapshotKind

__all__ = [
    "ApplicationRepository",
    "MonitoredApplication",
    "Deployment",
    "DeploymentPublic",
    "VerificationRun",
    "VerificationRunPublic",
    "UnverifiedCommitRecord",
    "DeploymentStatusTransition",
    "GithubSnapshot",
    "SnapshotKind",
]
