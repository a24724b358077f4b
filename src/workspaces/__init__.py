"""Workspace notification settings consulted by the alert engine.

Components:
- Workspace: Contact, opt-in switches, severity and server filters, plan tier
- WebhookConfig / SlackConfig: Channel integrations
- NotificationTargets: First enabled webhook and Slack integration
- WorkspaceRepository: Read access to the workspace tables
"""

from src.workspaces.repository import WorkspaceRepository
from src.workspaces.schemas import (
    ALL_SEVERITIES,
    NotificationTargets,
    SlackConfig,
    WebhookConfig,
    Workspace,
)

__all__ = [
    "ALL_SEVERITIES",
    "NotificationTargets",
    "SlackConfig",
    "WebhookConfig",
    "Workspace",
    "WorkspaceRepository",
]
