"""Threshold endpoints: read, update and defaults."""

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from src.api.auth import verify_api_key
from src.api.dependencies import get_threshold_service
from src.api.models import ErrorResponse, ThresholdsResponse, ThresholdUpdateResponse
from src.thresholds.schemas import ThresholdsUpdate
from src.thresholds.service import ThresholdService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get(
    "/thresholds/defaults",
    response_model=dict,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="Default thresholds",
    description="The built-in threshold set used when a workspace has no overrides.",
)
async def get_default_thresholds(
    api_key: str = Depends(verify_api_key),
) -> dict:
    return ThresholdService.get_default_thresholds().model_dump()


@router.get(
    "/workspaces/{workspace_id}/thresholds",
    response_model=ThresholdsResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="Workspace thresholds",
    description=(
        "Effective thresholds for a workspace (stored overrides merged over "
        "the defaults) and whether its plan allows changing them."
    ),
)
async def get_workspace_thresholds(
    workspace_id: str,
    api_key: str = Depends(verify_api_key),
    service: ThresholdService = Depends(get_threshold_service),
) -> ThresholdsResponse:
    thresholds = await service.get_thresholds(workspace_id)
    can_modify = await service.can_modify(workspace_id)
    return ThresholdsResponse(
        thresholds=thresholds.model_dump(),
        defaults=service.get_default_thresholds().model_dump(),
        can_modify=can_modify,
    )


@router.put(
    "/workspaces/{workspace_id}/thresholds",
    response_model=ThresholdUpdateResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        403: {"model": ErrorResponse, "description": "Plan does not allow threshold changes"},
        422: {"model": ErrorResponse, "description": "Invalid threshold values"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Update workspace thresholds",
    description=(
        "Apply a partial threshold update. Categories and tiers left out of "
        "the body keep their current values."
    ),
)
async def update_workspace_thresholds(
    workspace_id: str,
    update: ThresholdsUpdate,
    api_key: str = Depends(verify_api_key),
    service: ThresholdService = Depends(get_threshold_service),
) -> ThresholdUpdateResponse:
    if update.is_empty:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No threshold values provided",
        )

    allowed = await service.can_modify(workspace_id)
    result = await service.update_thresholds(workspace_id, update)
    if not result.success:
        if result.invalid:
            code = status.HTTP_422_UNPROCESSABLE_ENTITY
        elif allowed:
            code = status.HTTP_500_INTERNAL_SERVER_ERROR
        else:
            code = status.HTTP_403_FORBIDDEN
        raise HTTPException(status_code=code, detail=result.message)

    logger.info("Thresholds updated", workspace_id=workspace_id)
    thresholds = await service.get_thresholds(workspace_id)
    return ThresholdUpdateResponse(
        success=True,
        message=result.message,
        thresholds=thresholds.model_dump(),
    )
