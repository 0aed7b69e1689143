#!/usr/bin/env python3
"""
Send every scheduled email notification whose scheduled time has passed.

Run from an external scheduler (cron, platform job), e.g. every 5 minutes:
    python scripts/send_scheduled_notifications.py

Each notification is committed on its own so one failure does not hold back the rest.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

logger = logging.getLogger("send_scheduled_notifications")


def run(app) -> tuple[int, int]:
    """Returns (notifications sent, notifications failed)."""
    from app.blog.db import session_scope
    from app.blog.modules.notifications.models import STATUS_SCHEDULED, EmailNotification
    from app.blog.modules.notifications.service import (
        due_notifications,
        get_admin_settings,
        mail_context,
        resolve_recipients,
        send_notification,
    )

    with session_scope(app) as s:
        due_ids = [n.id for n in due_notifications(s)]
    if not due_ids:
        logger.info("No scheduled notifications due")
        return 0, 0

    sent = failed = 0
    with app.app_context():
        for notification_id in due_ids:
            try:
                with session_scope(app) as s:
                    # Another run (or an admin "send now") may have taken it since the due query.
                    n = s.get(EmailNotification, notification_id, with_for_update=True)
                    if n is None or n.status != STATUS_SCHEDULED:
                        logger.info("Notification %s is no longer scheduled; skipping", notification_id)
                        continue
                    recipients = resolve_recipients(s, n)
                    ctx = mail_context(app, get_admin_settings(s, create=False))
                    report = send_notification(s, n, ctx, recipients=recipients, created_by=n.created_by)
                logger.info(
                    "Notification %s sent: %s delivered, %s failed",
                    notification_id,
                    report.success_count,
                    report.failed_count,
                )
                sent += 1
            except Exception:
                logger.exception("Failed to send scheduled notification %s", notification_id)
                failed += 1
    return sent, failed


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    from app.blog import create_app

    app = create_app()
    sent, failed = run(app)
    print(f"Scheduled notifications: {sent} sent, {failed} failed", flush=True)
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
