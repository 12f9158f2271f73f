from deploy_audit.services.verification.policy.loader import (
    get_application_policies,
    load_policy,
    register_applications,
)

__all__ = ["get_application_policies", "load_policy", "register_applications"]
