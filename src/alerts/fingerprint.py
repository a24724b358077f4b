"""Stable alert identities.

A fingerprint names the underlying condition, not an occurrence: it never
contains a timestamp, so the same condition maps to the same fingerprint on
every poll. Queue alerts include their vhost because the same queue name can
exist in several vhosts. Hyphens in the vhost are percent-escaped so the
vhost segment always ends at the first hyphen after it: vhost ``a-b`` with
queue ``c`` and vhost ``a`` with queue ``b-c`` stay distinct.
"""

from src.alerts.schemas import AlertCandidate, AlertCategory, SourceType


def _escape_vhost(vhost: str) -> str:
    return vhost.replace("%", "%25").replace("-", "%2D")


def generate_fingerprint(
    server_id: str,
    category: AlertCategory | str,
    source_type: SourceType | str,
    source_name: str,
    vhost: str | None = None,
) -> str:
    """Build the fingerprint for an alert condition.

    Format: ``{server}-{category}-{type}-{name}``, or
    ``{server}-{category}-queue-{vhost}-{name}`` for queue alerts with a
    known vhost.
    """
    category = AlertCategory(category).value
    source_type = SourceType(source_type).value
    if source_type == SourceType.QUEUE.value and vhost:
        return f"{server_id}-{category}-queue-{_escape_vhost(vhost)}-{source_name}"
    return f"{server_id}-{category}-{source_type}-{source_name}"


def fingerprint_for(alert: AlertCandidate) -> str:
    return generate_fingerprint(
        alert.server_id,
        alert.category,
        alert.source.type,
        alert.source.name,
        alert.vhost,
    )


def vhost_marker(vhost: str) -> str:
    """Substring that identifies queue fingerprints belonging to ``vhost``."""
    return f"-queue-{_escape_vhost(vhost)}-"
