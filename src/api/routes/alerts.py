"""Alert endpoints: on-demand evaluation, health rollups and history."""

import time

from fastapi import APIRouter, Depends, HTTPException, Query, status
import structlog

from src.alerts.schemas import AlertCategory, AlertSeverity, AlertSummary
from src.alerts.service import AlertService
from src.api.auth import verify_api_key
from src.api.dependencies import get_alert_service
from src.api.models import (
    AlertItem,
    AlertSummaryItem,
    ClusterHealthResponse,
    ErrorResponse,
    HealthCheckResponse,
    ResolvedAlertItem,
    ResolvedAlertsResponse,
    ServerAlertsResponse,
)
from src.rabbitmq.errors import ServerNotFoundError

logger = structlog.get_logger(__name__)
router = APIRouter()

VALID_SEVERITIES = frozenset(s.value for s in AlertSeverity)
VALID_CATEGORIES = frozenset(c.value for c in AlertCategory)

_ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Invalid API key"},
    404: {"model": ErrorResponse, "description": "Server not found in workspace"},
    422: {"model": ErrorResponse, "description": "Invalid filter parameter"},
    500: {"model": ErrorResponse, "description": "Server error"},
}


def _validate_filters(severity: str | None, category: str | None) -> None:
    if severity and severity not in VALID_SEVERITIES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                f"Invalid severity {severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            ),
        )
    if category and category not in VALID_CATEGORIES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                f"Invalid category {category!r}. "
                f"Must be one of: {sorted(VALID_CATEGORIES)}"
            ),
        )


def _not_found(e: ServerNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get(
    "/servers/{server_id}/alerts",
    response_model=ServerAlertsResponse,
    responses=_ERROR_RESPONSES,
    summary="Evaluate server alerts",
    description=(
        "Fetch live node and queue metrics, evaluate them against the "
        "workspace's thresholds and return the active alerts. Tracking and "
        "notifications happen as a side effect of the pass."
    ),
)
async def get_server_alerts(
    server_id: str,
    workspace_id: str = Query(..., description="Workspace that owns the server"),
    vhost: str | None = Query(default=None, description="Only evaluate queues in this vhost"),
    server_name: str | None = Query(default=None, description="Display name override"),
    severity: str | None = Query(
        default=None,
        description="Only return alerts of this severity: critical, warning, info",
    ),
    category: str | None = Query(
        default=None,
        description="Only return alerts of this category",
    ),
    api_key: str = Depends(verify_api_key),
    service: AlertService = Depends(get_alert_service),
) -> ServerAlertsResponse:
    start_time = time.perf_counter()

    try:
        _validate_filters(severity, category)

        result = await service.get_server_alerts(server_id, server_name, workspace_id, vhost)

        # Filters narrow the response only; the whole pass is always tracked
        alerts = [
            alert for alert in result.alerts
            if (severity is None or alert.severity.value == severity)
            and (category is None or alert.category.value == category)
        ]
        summary = AlertSummary.from_alerts(alerts)

        latency_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "Server alerts evaluated",
            server_id=server_id,
            workspace_id=workspace_id,
            vhost=vhost,
            total=len(alerts),
            latency_ms=round(latency_ms, 2),
        )

        return ServerAlertsResponse(
            alerts=[AlertItem.model_validate(alert.to_dict()) for alert in alerts],
            summary=AlertSummaryItem(**summary.to_dict()),
            thresholds=result.thresholds.model_dump(),
            latency_ms=round(latency_ms, 2),
        )

    except HTTPException:
        raise
    except ServerNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        logger.error(f"Failed to evaluate alerts: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to evaluate alerts: {str(e)}",
        )


@router.get(
    "/servers/{server_id}/alerts/resolved",
    response_model=ResolvedAlertsResponse,
    responses=_ERROR_RESPONSES,
    summary="List resolved alerts",
    description="Resolved alert history for a server, most recently resolved first.",
)
async def get_resolved_alerts(
    server_id: str,
    workspace_id: str = Query(..., description="Workspace that owns the server"),
    severity: str | None = Query(default=None, description="Filter by severity"),
    category: str | None = Query(default=None, description="Filter by category"),
    vhost: str | None = Query(default=None, description="Only queue alerts in this vhost"),
    limit: int = Query(default=50, ge=1, le=500, description="Maximum alerts to return"),
    offset: int = Query(default=0, ge=0, description="Offset for pagination"),
    api_key: str = Depends(verify_api_key),
    service: AlertService = Depends(get_alert_service),
) -> ResolvedAlertsResponse:
    try:
        _validate_filters(severity, category)

        alerts, total = await service.get_resolved_alerts(
            server_id,
            workspace_id,
            severity=severity,
            category=category,
            vhost=vhost,
            limit=limit,
            offset=offset,
        )

        return ResolvedAlertsResponse(
            alerts=[ResolvedAlertItem.model_validate(a.to_dict()) for a in alerts],
            total=total,
            limit=limit,
            offset=offset,
        )

    except HTTPException:
        raise
    except ServerNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        logger.error(f"Failed to list resolved alerts: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list resolved alerts: {str(e)}",
        )


@router.get(
    "/servers/{server_id}/health",
    response_model=HealthCheckResponse,
    responses=_ERROR_RESPONSES,
    summary="Server health check",
    description="Connectivity, node, memory, disk and queue checks for one server.",
)
async def get_server_health(
    server_id: str,
    workspace_id: str = Query(..., description="Workspace that owns the server"),
    api_key: str = Depends(verify_api_key),
    service: AlertService = Depends(get_alert_service),
) -> HealthCheckResponse:
    try:
        check = await service.get_health_check(server_id, workspace_id)
        return HealthCheckResponse.model_validate(check.to_dict())
    except ServerNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        logger.error(f"Failed to run health check: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run health check: {str(e)}",
        )


@router.get(
    "/servers/{server_id}/cluster-health",
    response_model=ClusterHealthResponse,
    responses=_ERROR_RESPONSES,
    summary="Cluster health summary",
    description="Cluster verdict, issue counts and the first five issues.",
)
async def get_cluster_health(
    server_id: str,
    workspace_id: str = Query(..., description="Workspace that owns the server"),
    api_key: str = Depends(verify_api_key),
    service: AlertService = Depends(get_alert_service),
) -> ClusterHealthResponse:
    try:
        summary = await service.get_cluster_health_summary(server_id, workspace_id)
        return ClusterHealthResponse.model_validate(summary.to_dict())
    except ServerNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        logger.error(f"Failed to summarize cluster health: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to summarize cluster health: {str(e)}",
        )
