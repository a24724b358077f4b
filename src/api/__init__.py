"""
FastAPI alert service.

Provides REST API for alert evaluation and thresholds:
- GET /servers/{server_id}/alerts - Evaluate a server and return active alerts
- GET /servers/{server_id}/alerts/resolved - Resolved alert history
- GET /workspaces/{workspace_id}/thresholds - Effective thresholds
- GET /health - Service health check
"""

from src.api.app import create_app

__all__ = ["create_app"]
