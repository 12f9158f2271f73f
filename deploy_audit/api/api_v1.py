from fastapi import APIRouter

from deploy_audit.api.endpoints import health_router, verifications_router

router = APIRouter()

router.include_router(health_router, prefix="/health", tags=["health"])
router.include_router(verifications_router, tags=["verification"])
