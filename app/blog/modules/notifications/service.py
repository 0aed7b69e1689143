from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from flask import Flask, current_app, render_template

from app.blog.activity import log_activity
from app.blog.constants import POST_NOTIFY_BATCH_SIZE
from app.blog.db import session_scope
from app.blog.mailer import (
    EmailBackend,
    SendReport,
    Sender,
    email_backend_from_config,
    send_in_batches,
    send_individually,
    unsubscribe_url,
)
from app.blog.models import AdminSettings
from app.blog.modules.notifications.models import (
    RECIPIENT_TYPES,
    STATUS_DRAFT,
    STATUS_SCHEDULED,
    STATUS_SENT,
    EmailNotification,
)
from app.blog.modules.subscribers.models import Subscriber
from app.blog.utils import calculate_reading_time, format_category, format_reading_time, is_valid_email, isoformat

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.blog.modules.posts.models import Post

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailContext:
    """Everything a send needs besides the recipients."""

    backend: EmailBackend
    sender: Sender
    app_url: str
    site_name: str
    batch_size: int
    delay_seconds: float


def email_backend(app: Flask) -> EmailBackend:
    backend = app.extensions.get("email_backend")
    if backend is None:
        backend = email_backend_from_config(app.config)
        app.extensions["email_backend"] = backend
    return backend


def get_admin_settings(s: "Session", *, create: bool = True) -> AdminSettings | None:
    settings = s.query(AdminSettings).order_by(AdminSettings.id.asc()).first()
    if settings is None and create:
        settings = AdminSettings(
            email_notifications=True,
            auto_notify_new_post=True,
            auto_notify_new_subscriber=True,
            notification_from_email="noreply@techblog.com",
            notification_from_name="TechBlog",
        )
        s.add(settings)
        s.flush()
    return settings


def mail_context(app: Flask, settings: AdminSettings | None = None, *, batch_size: int | None = None) -> MailContext:
    cfg = app.config
    from_email = (settings.notification_from_email if settings else "") or cfg.get("EMAIL_FROM") or ""
    from_name = (settings.notification_from_name if settings else "") or cfg.get("EMAIL_FROM_NAME") or ""
    return MailContext(
        backend=email_backend(app),
        sender=Sender(from_email=from_email, from_name=from_name, reply_to=cfg.get("EMAIL_REPLY_TO") or ""),
        app_url=(cfg.get("APP_URL") or "").rstrip("/"),
        site_name=from_name or "TechBlog",
        batch_size=batch_size or int(cfg.get("EMAIL_BATCH_SIZE") or 10),
        delay_seconds=float(cfg.get("EMAIL_BATCH_DELAY_SECONDS") or 0.0),
    )


# ---------- Rendering ----------
def render_new_post_email(post: "Post", ctx: MailContext, email: str | None = None) -> str:
    return render_template(
        "email/new_post.html",
        post=post,
        post_url=f"{ctx.app_url}/blog/{post.slug}",
        category_label=format_category(post.category or ""),
        reading_time=format_reading_time(calculate_reading_time(post.content)),
        site_name=ctx.site_name,
        app_url=ctx.app_url,
        unsubscribe_url=unsubscribe_url(ctx.app_url, email),
    )


def render_newsletter_email(subject: str, content: str, ctx: MailContext, email: str | None = None) -> str:
    return render_template(
        "email/newsletter.html",
        subject=subject,
        content=content,
        site_name=ctx.site_name,
        app_url=ctx.app_url,
        unsubscribe_url=unsubscribe_url(ctx.app_url, email),
    )


# ---------- Recipients ----------
def active_subscriber_emails(s: "Session") -> list[str]:
    rows = (
        s.query(Subscriber.email)
        .filter(Subscriber.is_active.is_(True))
        .order_by(Subscriber.subscribed_at.asc(), Subscriber.id.asc())
        .all()
    )
    return [r[0] for r in rows]


def resolve_recipients(s: "Session", n: EmailNotification) -> list[str]:
    if n.recipient_type == "specific":
        seen: list[str] = []
        for email in n.recipient_list or []:
            email = str(email).strip()
            if email and email not in seen:
                seen.append(email)
        return seen
    q = s.query(Subscriber.email)
    if n.recipient_type != "all":
        q = q.filter(Subscriber.is_active.is_(True))
    return [r[0] for r in q.order_by(Subscriber.subscribed_at.asc(), Subscriber.id.asc()).all()]


# ---------- Notifications CRUD ----------
def notification_to_dict(n: EmailNotification) -> dict[str, Any]:
    return {
        "id": n.id,
        "subject": n.subject,
        "content": n.content,
        "recipientType": n.recipient_type,
        "recipientList": list(n.recipient_list or []),
        "status": n.status,
        "sentCount": n.sent_count,
        "failedCount": n.failed_count,
        "scheduledAt": isoformat(n.scheduled_at),
        "sentAt": isoformat(n.sent_at),
        "createdBy": n.created_by,
        "createdAt": isoformat(n.created_at),
        "updatedAt": isoformat(n.updated_at),
    }


def parse_datetime(raw: Any) -> datetime | None:
    """ISO-8601 (with optional trailing Z) to naive UTC. Raises ValueError on bad input."""
    if raw in (None, ""):
        return None
    if not isinstance(raw, str):
        raise ValueError("scheduledAt must be an ISO-8601 string")
    value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def validate_notification_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial:
        for key, label in (("subject", "Subject"), ("content", "Content"), ("recipientType", "Recipient type")):
            if not str(payload.get(key) or "").strip():
                errors.append(f"{label} is required.")
    rtype = payload.get("recipientType")
    if rtype and rtype not in RECIPIENT_TYPES:
        errors.append(f"Recipient type must be one of: {', '.join(RECIPIENT_TYPES)}.")
    rlist = payload.get("recipientList")
    if rlist is not None and not isinstance(rlist, list):
        errors.append("Recipient list must be a list of email addresses.")
    elif rlist:
        bad = [e for e in rlist if not is_valid_email(e)]
        if bad:
            errors.append(f"Invalid recipient email: {bad[0]}")
    if rtype == "specific" and not rlist:
        errors.append("At least one recipient is required for specific recipients.")
    try:
        parse_datetime(payload.get("scheduledAt"))
    except ValueError:
        errors.append("Scheduled time must be an ISO-8601 date-time.")
    return errors


def create_notification(s: "Session", payload: dict, created_by: str | None) -> EmailNotification:
    scheduled_at = parse_datetime(payload.get("scheduledAt"))
    now = datetime.utcnow()
    n = EmailNotification(
        subject=str(payload.get("subject") or "").strip(),
        content=str(payload.get("content") or ""),
        recipient_type=payload.get("recipientType") or "active",
        recipient_list=[str(e).strip() for e in (payload.get("recipientList") or [])],
        status=STATUS_SCHEDULED if scheduled_at else STATUS_DRAFT,
        scheduled_at=scheduled_at,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    s.add(n)
    s.flush()
    if scheduled_at:
        log_activity(
            s,
            type="notification_scheduled",
            title=f'Scheduled notification: "{n.subject}"',
            details=f"Scheduled for {scheduled_at.isoformat()} ({n.recipient_type} recipients)",
            metadata={"notificationId": n.id, "recipientType": n.recipient_type, "scheduledAt": scheduled_at},
            created_by=created_by,
        )
    else:
        log_activity(
            s,
            type="notification_created",
            title=f'Created notification: "{n.subject}"',
            details=f"Draft email for {n.recipient_type} recipients",
            metadata={"notificationId": n.id, "recipientType": n.recipient_type},
            created_by=created_by,
        )
    return n


def update_notification(s: "Session", n: EmailNotification, payload: dict) -> None:
    if "subject" in payload and payload["subject"] is not None:
        n.subject = str(payload["subject"]).strip()
    if "content" in payload and payload["content"] is not None:
        n.content = str(payload["content"])
    if payload.get("recipientType"):
        n.recipient_type = payload["recipientType"]
    if "recipientList" in payload:
        n.recipient_list = [str(e).strip() for e in (payload.get("recipientList") or [])]
    if "scheduledAt" in payload:
        n.scheduled_at = parse_datetime(payload.get("scheduledAt"))
        n.status = STATUS_SCHEDULED if n.scheduled_at else STATUS_DRAFT
    n.updated_at = datetime.utcnow()


# ---------- Sending ----------
def send_notification(
    s: "Session",
    n: EmailNotification,
    ctx: MailContext,
    *,
    recipients: list[str] | None = None,
    created_by: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SendReport:
    """
    Deliver a campaign in batches and mark it sent with the success/failure counts.
    Caller commits.
    """
    if recipients is None:
        recipients = resolve_recipients(s, n)
    report = send_in_batches(
        ctx.backend,
        ctx.sender,
        recipients,
        subject=n.subject,
        render_html=lambda email: render_newsletter_email(n.subject, n.content, ctx, email),
        app_url=ctx.app_url,
        batch_size=ctx.batch_size,
        delay_seconds=ctx.delay_seconds,
        sleep=sleep,
    )

    now = datetime.utcnow()
    n.status = STATUS_SENT
    n.sent_at = now
    n.sent_count = report.success_count
    n.failed_count = report.failed_count
    n.updated_at = now

    meta = {
        "notificationId": n.id,
        "recipientType": n.recipient_type,
        "sentCount": report.success_count,
        "failedCount": report.failed_count,
    }
    if report.success_count:
        log_activity(
            s,
            type="notification_sent",
            title=f'Sent notification: "{n.subject}"',
            details=f"Delivered to {report.success_count} of {len(recipients)} recipients",
            metadata=meta,
            created_by=created_by,
        )
    else:
        log_activity(
            s,
            type="notification_failed",
            title=f'Failed to send notification: "{n.subject}"',
            details=f"All {report.failed_count} deliveries failed",
            metadata=meta,
            created_by=created_by,
        )
    return report


def send_post_notification(
    s: "Session",
    post: "Post",
    ctx: MailContext,
    *,
    recipients: list[str] | None = None,
    created_by: str | None = None,
    log: bool = True,
    sleep: Callable[[float], None] = time.sleep,
) -> SendReport:
    """One "New Post" email per active subscriber, each with its own unsubscribe link."""
    if recipients is None:
        recipients = active_subscriber_emails(s)
    report = send_individually(
        ctx.backend,
        ctx.sender,
        recipients,
        subject=f"New Post: {post.title}",
        render_html=lambda email: render_new_post_email(post, ctx, email),
        app_url=ctx.app_url,
        batch_size=ctx.batch_size,
        delay_seconds=ctx.delay_seconds,
        sleep=sleep,
    )
    if log and report.success_count:
        log_activity(
            s,
            type="notification_sent",
            title=f'Sent new post notification: "{post.title}"',
            details=f"Delivered to {report.success_count} of {len(recipients)} subscribers",
            metadata={
                "postId": post.id,
                "postSlug": post.slug,
                "sentCount": report.success_count,
                "failedCount": report.failed_count,
            },
            created_by=created_by,
        )
    return report


def _deliver_post_notification(app: Flask, post_id: int, created_by: str | None) -> None:
    from app.blog.modules.posts.models import Post

    with app.app_context():
        try:
            with session_scope(app) as s:
                settings = get_admin_settings(s, create=False)
                if settings is not None and not (settings.email_notifications and settings.auto_notify_new_post):
                    logger.info("Auto-notify disabled; not emailing subscribers about post %s", post_id)
                    return
                post = s.get(Post, post_id)
                if post is None or not post.is_published:
                    logger.info("Skipping publish notification; post %s is gone or unpublished", post_id)
                    return
                ctx = mail_context(app, settings, batch_size=POST_NOTIFY_BATCH_SIZE)
                report = send_post_notification(s, post, ctx, created_by=created_by)
                logger.info(
                    "Publish notification for post %s: %s sent, %s failed",
                    post_id,
                    report.success_count,
                    report.failed_count,
                )
        except Exception:
            logger.exception("Failed to send publish notification for post %s", post_id)


def notify_post_published(post_id: int, *, created_by: str | None = None) -> None:
    """
    Fire-and-forget "new post" email to active subscribers, gated by admin settings.
    Call after the post is committed; uses its own session.
    """
    app = current_app._get_current_object()  # type: ignore[attr-defined]
    if app.config.get("NOTIFY_ASYNC", True):
        t = threading.Thread(
            target=_deliver_post_notification,
            args=(app, post_id, created_by),
            name=f"notify-post-{post_id}",
            daemon=True,
        )
        t.start()
    else:
        _deliver_post_notification(app, post_id, created_by)


def due_notifications(s: "Session", now: datetime | None = None) -> list[EmailNotification]:
    now = now or datetime.utcnow()
    return (
        s.query(EmailNotification)
        .filter(EmailNotification.status == STATUS_SCHEDULED)
        .filter(EmailNotification.scheduled_at.isnot(None))
        .filter(EmailNotification.scheduled_at <= now)
        .order_by(EmailNotification.scheduled_at.asc(), EmailNotification.id.asc())
        .all()
    )
