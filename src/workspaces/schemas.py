"""Workspace notification settings and channel integrations.

Read-only from the alert engine's point of view: the dashboard owns these
rows, the engine only consults them to decide fan-out targets.
"""

from dataclasses import dataclass

ALL_SEVERITIES: frozenset[str] = frozenset({"critical", "warning", "info"})


@dataclass
class Workspace:
    """Notification-relevant view of a workspace row.

    Attributes:
        id: Workspace identifier.
        name: Display name used in notification copy.
        contact_email: Recipient of alert emails.
        email_notifications_enabled: Master switch for sending notifications.
        notification_severities: Severities the workspace wants to hear
            about. ``None`` in storage means all of them.
        notification_server_ids: Servers that may notify. ``None`` or an
            empty list means every server.
        plan: Billing plan tier of the workspace owner.
    """

    id: str
    name: str
    contact_email: str | None = None
    email_notifications_enabled: bool = True
    notification_severities: frozenset[str] = ALL_SEVERITIES
    notification_server_ids: list[str] | None = None
    plan: str = "FREE"

    @property
    def can_send_notifications(self) -> bool:
        return self.email_notifications_enabled and bool(self.contact_email)

    def notifies_for_server(self, server_id: str) -> bool:
        if not self.notification_server_ids:
            return True
        return server_id in self.notification_server_ids

    def wants_severity(self, severity: str) -> bool:
        return severity in self.notification_severities


@dataclass
class WebhookConfig:
    id: str
    workspace_id: str
    url: str
    secret: str | None = None
    version: str = "v1"
    enabled: bool = True


@dataclass
class SlackConfig:
    id: str
    workspace_id: str
    webhook_url: str
    enabled: bool = True


@dataclass
class NotificationTargets:
    """The first enabled webhook and Slack integration of a workspace."""

    webhook: WebhookConfig | None = None
    slack: SlackConfig | None = None
