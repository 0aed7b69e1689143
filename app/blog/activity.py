from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.blog.models import ActivityLog

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = frozenset(
    {
        "post_created",
        "post_published",
        "post_updated",
        "post_deleted",
        "post_featured",
        "post_unfeatured",
        "subscriber_added",
        "subscriber_removed",
        "subscriber_activated",
        "subscriber_deactivated",
        "notification_created",
        "notification_sent",
        "notification_scheduled",
        "notification_failed",
        "category_created",
        "category_updated",
        "category_deleted",
        "admin_login",
        "admin_logout",
    }
)

# Prefixes accepted by the dashboard's type filter.
ACTIVITY_GROUPS = ("post", "subscriber", "notification", "category", "admin")


def log_activity(
    s: Session,
    *,
    type: str,
    title: str,
    details: str | None = None,
    metadata: dict[str, Any] | None = None,
    created_by: str | None = None,
) -> ActivityLog | None:
    """
    Append an activity row in a SAVEPOINT so it commits with the caller's change.
    A failed insert is logged and dropped; it must never fail the primary operation.
    """
    if type not in ACTIVITY_TYPES:
        logger.warning("Unknown activity type %r (title=%s)", type, title)
    ev = ActivityLog(
        type=type,
        title=title[:512],
        details=details,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        created_by=created_by,
    )
    try:
        with s.begin_nested():
            s.add(ev)
    except SQLAlchemyError:
        logger.exception("Error logging activity (type=%s)", type)
        return None
    return ev


def activity_metadata(ev: ActivityLog) -> dict[str, Any] | None:
    if not ev.metadata_json:
        return None
    try:
        value = json.loads(ev.metadata_json)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'} ago"


def format_time_ago(when: datetime, now: datetime | None = None) -> str:
    now = now or datetime.utcnow()
    seconds = max(0, int((now - when).total_seconds()))
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if seconds < 60:
        return _plural(seconds, "second")
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    return when.strftime("%m/%d/%Y")
