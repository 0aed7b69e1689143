from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.blog.constants import GMAIL_DAILY_LIMIT, GMAIL_RATE_LIMIT, GMAIL_RECOMMENDATIONS, POST_NOTIFY_BATCH_SIZE
from app.blog.db import db_session
from app.blog.mailer import EmailError
from app.blog.models import ROLE_ADMIN
from app.blog.modules.notifications.models import STATUS_SENT, STATUSES, EmailNotification
from app.blog.modules.notifications.service import (
    active_subscriber_emails,
    create_notification,
    email_backend,
    get_admin_settings,
    mail_context,
    notification_to_dict,
    resolve_recipients,
    send_notification,
    send_post_notification,
    update_notification,
    validate_notification_payload,
)
from app.blog.modules.posts.models import Post
from app.blog.rbac import require_role
from app.blog.utils import paginate, parse_int

bp = Blueprint("admin_notifications", __name__)


# ---------- Campaigns ----------
@bp.get("/notifications")
@require_role(ROLE_ADMIN)
def notifications_list():
    s = db_session()
    page = parse_int(request.args.get("page"), 1)
    limit = parse_int(request.args.get("limit"), 10, maximum=100)
    status = (request.args.get("status") or "all").strip()

    q = s.query(EmailNotification)
    if status in STATUSES:
        q = q.filter(EmailNotification.status == status)
    q = q.order_by(EmailNotification.created_at.desc(), EmailNotification.id.desc())
    rows, pagination = paginate(q, page=page, limit=limit)
    return jsonify({"notifications": [notification_to_dict(n) for n in rows], "pagination": pagination})


@bp.post("/notifications")
@require_role(ROLE_ADMIN)
def notifications_create():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    errors = validate_notification_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    try:
        n = create_notification(s, payload, g.current_user.clerk_id)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error creating notification (request_id=%s)", g.request_id)
        return jsonify({"error": "Failed to create notification"}), 500
    return jsonify(notification_to_dict(n)), 201


@bp.put("/notifications")
@require_role(ROLE_ADMIN)
def notifications_update():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    notification_id = payload.get("id")
    if not notification_id:
        return jsonify({"error": "Notification ID required"}), 400
    n = s.get(EmailNotification, notification_id)
    if n is None:
        return jsonify({"error": "Notification not found"}), 404
    if n.status == STATUS_SENT:
        return jsonify({"error": "Cannot edit a notification that has already been sent"}), 400

    # Validate the merged result so a partial update can't leave "specific" without recipients.
    merged = {
        "recipientType": payload.get("recipientType") or n.recipient_type,
        "recipientList": payload["recipientList"] if "recipientList" in payload else list(n.recipient_list or []),
        "scheduledAt": payload.get("scheduledAt"),
    }
    errors = validate_notification_payload(merged, partial=True)
    for key in ("subject", "content"):
        if key in payload and not str(payload.get(key) or "").strip():
            errors.append(f"{key.capitalize()} cannot be empty.")
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    try:
        update_notification(s, n, payload)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error updating notification %s (request_id=%s)", notification_id, g.request_id)
        return jsonify({"error": "Failed to update notification"}), 500
    return jsonify(notification_to_dict(n))


@bp.delete("/notifications")
@require_role(ROLE_ADMIN)
def notifications_delete():
    s = db_session()
    notification_id = parse_int(request.args.get("id"), 0)
    if not notification_id:
        return jsonify({"error": "Notification ID required"}), 400
    n = s.get(EmailNotification, notification_id)
    if n is None:
        return jsonify({"error": "Notification not found"}), 404
    s.delete(n)
    s.commit()
    return jsonify({"message": "Notification deleted successfully"})


@bp.post("/notifications/send")
@require_role(ROLE_ADMIN)
def notifications_send():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    notification_id = payload.get("notificationId")
    if not notification_id:
        return jsonify({"error": "Notification ID is required"}), 400

    n = s.get(EmailNotification, notification_id)
    if n is None:
        return jsonify({"error": "Notification not found"}), 404
    if n.status == STATUS_SENT:
        return jsonify({"error": "Notification has already been sent"}), 400

    recipients = resolve_recipients(s, n)
    if not recipients:
        return jsonify({"error": "No recipients found"}), 400

    try:
        ctx = mail_context(current_app, get_admin_settings(s, create=False))
        report = send_notification(s, n, ctx, recipients=recipients, created_by=g.current_user.clerk_id)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error sending notification %s (request_id=%s)", notification_id, g.request_id)
        return jsonify({"error": "Failed to send notification"}), 500

    return jsonify(
        {
            "message": "Notification sent",
            "sentCount": report.success_count,
            "failedCount": report.failed_count,
            "totalRecipients": len(recipients),
            "notification": notification_to_dict(n),
        }
    )


# ---------- Post announcements ----------
@bp.post("/send-post-notification")
@require_role(ROLE_ADMIN)
def send_post_announcement():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    post_id = payload.get("postId")
    if not post_id:
        return jsonify({"error": "Post ID is required"}), 400

    post = s.get(Post, post_id)
    if post is None:
        return jsonify({"error": "Post not found"}), 404
    if not post.is_published:
        return jsonify({"error": "Post must be published to send notifications"}), 400

    recipients = active_subscriber_emails(s)
    if not recipients:
        return jsonify({"error": "No active subscribers found"}), 400

    try:
        ctx = mail_context(current_app, get_admin_settings(s, create=False), batch_size=POST_NOTIFY_BATCH_SIZE)
        report = send_post_notification(s, post, ctx, recipients=recipients, created_by=g.current_user.clerk_id)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error sending post notification %s (request_id=%s)", post_id, g.request_id)
        return jsonify({"error": "Failed to send notification"}), 500

    return jsonify(
        {
            "message": "Post notification sent successfully",
            "successCount": report.success_count,
            "failedCount": report.failed_count,
            "totalSubscribers": len(recipients),
        }
    )


# ---------- Email provider ----------
@bp.get("/email-usage")
@require_role(ROLE_ADMIN)
def email_usage():
    return jsonify(
        {
            "backend": email_backend(current_app).name,
            "dailyLimit": GMAIL_DAILY_LIMIT,
            "rateLimit": GMAIL_RATE_LIMIT,
            "recommendations": list(GMAIL_RECOMMENDATIONS),
        }
    )


@bp.post("/test-smtp")
@require_role(ROLE_ADMIN)
def test_smtp():
    backend = email_backend(current_app)
    try:
        backend.verify()
    except EmailError as e:
        current_app.logger.warning("Email backend %s verification failed: %s", backend.name, e)
        return jsonify({"success": False, "error": f"Connection failed: {e}"}), 400
    return jsonify({"success": True, "message": f"Connection successful ({backend.name})."})
