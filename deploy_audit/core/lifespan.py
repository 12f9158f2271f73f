from contextlib import asynccontextmanager

from fastapi import FastAPI

from deploy_audit.core.config import settings
from deploy_audit.core.logging import get_logger, setup_logging
from deploy_audit.db.session import AsyncSessionLocal, engine
from deploy_audit.services.verification.policy import (
    get_application_policies,
    load_policy,
    register_applications,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Lifespan function for the FastAPI application.
    Handles startup and shutdown events for application services.
    """
    # 1. Logging
    setup_logging(settings.LOG_LEVEL)

    # 2. Register monitored applications from the policy file
    if settings.POLICY_PATH:
        policies = get_application_policies(load_policy(settings.POLICY_PATH))
        async with AsyncSessionLocal() as session:
            await register_applications(session, policies)
    else:
        logger.info("POLICY_PATH not set, skipping application registration")

    yield

    # 3. Dispose Database Engine
    await engine.dispose()
