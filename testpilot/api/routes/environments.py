from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Query
import structlog

from testpilot.models.schemas import (
    Environment, EnvironmentCreate, EnvironmentUpdate, ResolvedEnvironment
)
from testpilot.services.environment_service import (
    EnvironmentService,
    EnvironmentResolutionError,
    ENVIRONMENT_NOT_FOUND,
)
from testpilot.core.dependencies import get_environment_service

logger = structlog.get_logger()

router = APIRouter(prefix="/environments", tags=["environments"])


@router.post("/", response_model=Environment, status_code=status.HTTP_201_CREATED)
async def create_environment(
    environment: EnvironmentCreate,
    service: EnvironmentService = Depends(get_environment_service)
):
    """Create a new environment"""
    try:
        return await service.create_environment(environment)
    except Exception as e:
        logger.error("Failed to create environment", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create environment"
        )


@router.get("/", response_model=List[Environment])
async def get_all_environments(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    service: EnvironmentService = Depends(get_environment_service)
):
    """Get all environments with pagination"""
    return await service.get_all_environments(skip=skip, limit=limit)


@router.get("/{environment_id}", response_model=Environment)
async def get_environment(
    environment_id: int,
    service: EnvironmentService = Depends(get_environment_service)
):
    """Get an environment by ID"""
    environment = await service.get_environment(environment_id)
    if not environment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Environment not found"
        )
    return environment


@router.put("/{environment_id}", response_model=Environment)
async def update_environment(
    environment_id: int,
    environment_update: EnvironmentUpdate,
    service: EnvironmentService = Depends(get_environment_service)
):
    """Update an existing environment"""
    environment = await service.update_environment(environment_id, environment_update)
    if not environment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Environment not found"
        )
    return environment


@router.delete("/{environment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_environment(
    environment_id: int,
    service: EnvironmentService = Depends(get_environment_service)
):
    """Delete an environment"""
    if not await service.delete_environment(environment_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Environment not found"
        )


@router.get("/{environment_id}/resolve/{sub_environment}", response_model=ResolvedEnvironment)
async def resolve_environment(
    environment_id: int,
    sub_environment: str,
    service: EnvironmentService = Depends(get_environment_service)
):
    """Resolve the variables of one sub-environment"""
    try:
        return await service.resolve(environment_id, sub_environment)
    except EnvironmentResolutionError as e:
        logger.warning("Environment resolution failed", environment_id=environment_id, code=e.code)
        code = status.HTTP_404_NOT_FOUND if e.code == ENVIRONMENT_NOT_FOUND else status.HTTP_422_UNPROCESSABLE_ENTITY
        raise HTTPException(status_code=code, detail={"message": e.message, "code": e.code})
