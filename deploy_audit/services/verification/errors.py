"""
Verification service exceptions.
"""


class VerificationError(Exception):
    """Base exception for verification failures outside the engine."""


class InvalidVerificationInput(VerificationError):
    """The deployment cannot be verified as recorded (e.g. no commit sha)."""


class DeploymentNotFound(VerificationError):
    def __init__(self, deployment_id: int) -> None:
        self.deployment_id = deployment_id
        super().__init__(f"Deployment {deployment_id} not found")


class SnapshotMissing(VerificationError):
    """A cache-only fetch needed data that was never stored."""
