from deploy_audit.api.endpoints.health import router as health_router
from deploy_audit.api.endpoints.verifications import router as verifications_router

__all__ = ["health_router", "verifications_router"]
