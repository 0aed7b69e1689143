from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.blog.constants import POST_NOTIFY_BATCH_SIZE
from app.blog.db import db_session
from app.blog.models import ROLE_WRITER
from app.blog.modules.notifications.service import (
    active_subscriber_emails,
    get_admin_settings,
    mail_context,
    send_post_notification,
)
from app.blog.modules.posts.models import Post
from app.blog.rbac import require_role

bp = Blueprint("notify", __name__)


@bp.post("/notify")
@require_role(ROLE_WRITER)
def notify_subscribers():
    """Email every active subscriber about a published post, one message each."""
    s = db_session()
    payload = request.get_json(silent=True) or {}
    post_id = payload.get("postId")
    if not post_id:
        return jsonify({"error": "Post ID is required"}), 400

    post = s.get(Post, post_id)
    if post is None or not post.is_published:
        return jsonify({"error": "Post not found or not published"}), 404

    recipients = active_subscriber_emails(s)
    if not recipients:
        return jsonify({"message": "No active subscribers found"}), 200

    try:
        ctx = mail_context(current_app, get_admin_settings(s, create=False), batch_size=POST_NOTIFY_BATCH_SIZE)
        report = send_post_notification(s, post, ctx, recipients=recipients, log=False)
    except Exception:
        s.rollback()
        current_app.logger.exception("Error sending notifications for post %s (request_id=%s)", post_id, g.request_id)
        return jsonify({"error": "Failed to send notifications"}), 500

    return jsonify(
        {
            "message": "Email notifications sent",
            "successCount": report.success_count,
            "errorCount": report.failed_count,
            "totalSubscribers": len(recipients),
        }
    )
