from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from deploy_audit.core.logging import get_logger
from deploy_audit.dependencies.database import get_db

logger = get_logger(__name__)

router = APIRouter()


@router.get("")
async def health_check(session: Annotated[AsyncSession, Depends(get_db)]):
    """
    Liveness plus a database round trip.
    """
    try:
        await session.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error("Health check database query failed: %s", e)
        database = "unavailable"
    return {"status": "ok", "database": database}
