from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from deploy_audit.db.models.deployment import Deployment, DeploymentPublic
from deploy_audit.db.models.verification_run import VerificationRunPublic
from deploy_audit.dependencies.database import get_db
from deploy_audit.dependencies.github import get_github_client
from deploy_audit.integrations.github.client import GitHubClient
from deploy_audit.integrations.github.errors import GitHubAuthError, TransientGitHubError
from deploy_audit.services.verification.diffs import (
    VerificationDiff,
    compute_verification_diffs,
)
from deploy_audit.services.verification.errors import (
    DeploymentNotFound,
    InvalidVerificationInput,
)
from deploy_audit.services.verification.service import (
    BulkVerificationSummary,
    VerificationService,
)
from deploy_audit.services.verification.types import VerificationResult

router = APIRouter()

SessionDep = Annotated[AsyncSession, Depends(get_db)]
GitHubDep = Annotated[GitHubClient, Depends(get_github_client)]


def get_verification_service(session: SessionDep, github: GitHubDep) -> VerificationService:
    """Get verification service (Dependency Injection)."""
    return VerificationService(session, github)


def get_history_service(session: SessionDep) -> VerificationService:
    """Verification service for read-only endpoints; no GitHub access."""
    return VerificationService(session)


@router.get("/deployments/{deployment_id}", response_model=DeploymentPublic)
async def get_deployment(deployment_id: int, session: SessionDep):
    """Deployment with its current four-eyes status."""
    deployment = await session.get(Deployment, deployment_id)
    if deployment is None:
        raise HTTPException(status_code=404, detail="Deployment not found")
    return deployment.to_public()


@router.post("/deployments/{deployment_id}/verify", response_model=VerificationResult)
async def verify_deployment(
    deployment_id: int,
    service: Annotated[VerificationService, Depends(get_verification_service)],
    force_refresh: bool = Query(False, description="Ignore cached GitHub data"),
):
    """Run four-eyes verification for a deployment and store the result."""
    try:
        return await service.verify(deployment_id, force_refresh=force_refresh)
    except DeploymentNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidVerificationInput as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except (TransientGitHubError, GitHubAuthError) as e:
        raise HTTPException(status_code=503, detail=e.message) from e


@router.get(
    "/deployments/{deployment_id}/verification-runs",
    response_model=List[VerificationRunPublic],
)
async def get_verification_runs(
    deployment_id: int,
    service: Annotated[VerificationService, Depends(get_history_service)],
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
):
    """Verification history for a deployment, newest first."""
    runs = await service.get_verification_runs(deployment_id, skip=skip, limit=limit)
    return [run.to_public() for run in runs]


@router.get(
    "/applications/{application_id}/verification-diffs",
    response_model=List[VerificationDiff],
)
async def get_verification_diffs(application_id: int, session: SessionDep):
    """Deployments whose stored verdict differs from a fresh, cache-only recomputation."""
    return await compute_verification_diffs(session, application_id)


@router.post(
    "/applications/{application_id}/reverify", response_model=BulkVerificationSummary
)
async def reverify_application(
    application_id: int,
    service: Annotated[VerificationService, Depends(get_verification_service)],
    force_refresh: bool = Query(False),
):
    """Re-verify all deployments of an application, sequentially."""
    return await service.reverify_application(application_id, force_refresh=force_refresh)
