"""
Four-eyes deployment verification.

The decision engine (`verify_deployment`) is pure; fetch, store and service
modules around it do the I/O.
"""

from deploy_audit.services.verification.engine import verify_deployment
from deploy_audit.services.verification.types import (
    VerificationInput,
    VerificationResult,
    VerificationStatus,
)

__all__ = [
    "verify_deployment",
    "VerificationInput",
    "VerificationResult",
    "VerificationStatus",
]
