from __future__ import annotations

from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func, or_

from app.blog.activity import ACTIVITY_GROUPS, activity_metadata, format_time_ago
from app.blog.auth import user_to_dict
from app.blog.db import db_session
from app.blog.models import ROLE_ADMIN, ROLE_WRITER, ROLES, ActivityLog, AdminSettings, User
from app.blog.modules.categories.models import Category
from app.blog.modules.notifications.models import STATUS_DRAFT, EmailNotification
from app.blog.modules.notifications.service import get_admin_settings
from app.blog.modules.posts.models import Post
from app.blog.modules.subscribers.models import Subscriber
from app.blog.rbac import require_role
from app.blog.utils import escape_like, is_valid_email, isoformat, paginate, parse_bool, parse_int

bp = Blueprint("admin", __name__)


# ---------- Dashboard ----------
@bp.get("/stats")
@require_role(ROLE_WRITER)
def stats():
    s = db_session()
    total_posts = s.query(func.count(Post.id)).scalar() or 0
    published = s.query(func.count(Post.id)).filter(Post.is_published.is_(True)).scalar() or 0
    return jsonify(
        {
            "totalPosts": total_posts,
            "publishedPosts": published,
            "draftPosts": total_posts - published,
            "totalSubscribers": s.query(func.count(Subscriber.id)).filter(Subscriber.is_active.is_(True)).scalar() or 0,
            "totalCategories": s.query(func.count(Category.id)).scalar() or 0,
            "pendingNotifications": s.query(func.count(EmailNotification.id))
            .filter(EmailNotification.status == STATUS_DRAFT)
            .scalar()
            or 0,
        }
    )


def _activity_to_dict(ev: ActivityLog, now: datetime) -> dict:
    return {
        "id": ev.id,
        "type": ev.type,
        "title": ev.title,
        "details": ev.details,
        "metadata": activity_metadata(ev),
        "createdBy": ev.created_by,
        "createdAt": isoformat(ev.created_at),
        "timeAgo": format_time_ago(ev.created_at, now),
    }


@bp.get("/activity")
@require_role(ROLE_ADMIN)
def activity():
    s = db_session()
    page = parse_int(request.args.get("page"), 1)
    limit = parse_int(request.args.get("limit"), 10, maximum=100)
    type_filter = (request.args.get("type") or "all").strip()

    q = s.query(ActivityLog)
    if type_filter in ACTIVITY_GROUPS:
        q = q.filter(ActivityLog.type.startswith(f"{type_filter}_"))
    q = q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    rows, pagination = paginate(q, page=page, limit=limit)
    now = datetime.utcnow()
    return jsonify({"activities": [_activity_to_dict(ev, now) for ev in rows], "pagination": pagination})


# ---------- Settings ----------
def _settings_to_dict(st: AdminSettings) -> dict:
    return {
        "id": st.id,
        "emailNotifications": st.email_notifications,
        "autoNotifyNewPost": st.auto_notify_new_post,
        "autoNotifyNewSubscriber": st.auto_notify_new_subscriber,
        "notificationFromEmail": st.notification_from_email,
        "notificationFromName": st.notification_from_name,
        "createdAt": isoformat(st.created_at),
        "updatedAt": isoformat(st.updated_at),
    }


_SETTINGS_FLAGS = {
    "emailNotifications": "email_notifications",
    "autoNotifyNewPost": "auto_notify_new_post",
    "autoNotifyNewSubscriber": "auto_notify_new_subscriber",
}


@bp.get("/settings")
@require_role(ROLE_ADMIN)
def settings_get():
    s = db_session()
    st = get_admin_settings(s)
    s.commit()
    return jsonify(_settings_to_dict(st))


@bp.put("/settings")
@require_role(ROLE_ADMIN)
def settings_put():
    s = db_session()
    payload = request.get_json(silent=True) or {}

    from_email = payload.get("notificationFromEmail")
    if from_email is not None and not is_valid_email(from_email):
        return jsonify({"error": "Valid sender email address is required"}), 400

    st = get_admin_settings(s)
    for key, attr in _SETTINGS_FLAGS.items():
        value = parse_bool(payload.get(key))
        if value is not None:
            setattr(st, attr, value)
    if from_email is not None:
        st.notification_from_email = from_email.strip()
    if payload.get("notificationFromName") is not None:
        st.notification_from_name = str(payload["notificationFromName"]).strip()
    st.updated_at = datetime.utcnow()
    s.commit()
    current_app.logger.info("Admin settings updated by %s", g.current_user.clerk_id)
    return jsonify(_settings_to_dict(st))


# ---------- Users ----------
def _user_with_posts(s, user: User) -> dict:
    d = user_to_dict(user)
    counts = (
        s.query(Post.is_published, func.count(Post.id))
        .filter(Post.author_id == user.id)
        .group_by(Post.is_published)
        .all()
    )
    by_flag = {bool(flag): n for flag, n in counts}
    d["postCount"] = sum(by_flag.values())
    d["publishedPostCount"] = by_flag.get(True, 0)
    return d


@bp.get("/users")
@require_role(ROLE_ADMIN)
def users_list():
    s = db_session()
    page = parse_int(request.args.get("page"), 1)
    limit = parse_int(request.args.get("limit"), 10, maximum=100)
    role = (request.args.get("role") or "all").strip().upper()
    search = (request.args.get("search") or "").strip()

    q = s.query(User)
    if role in ROLES:
        q = q.filter(User.role == role)
    if search:
        like = f"%{escape_like(search)}%"
        q = q.filter(
            or_(
                User.first_name.ilike(like, escape="\\"),
                User.last_name.ilike(like, escape="\\"),
                User.email.ilike(like, escape="\\"),
            )
        )
    q = q.order_by(User.created_at.desc(), User.id.desc())
    users, pagination = paginate(q, page=page, limit=limit)

    now = datetime.utcnow()
    role_stats = {r: n for r, n in s.query(User.role, func.count(User.id)).group_by(User.role).all()}
    analytics = {
        "total": pagination["total"],
        "roleStats": role_stats,
        "recentSignups": s.query(func.count(User.id)).filter(User.created_at >= now - timedelta(days=7)).scalar() or 0,
        "activeUsers": s.query(func.count(User.id)).filter(User.last_sign_in >= now - timedelta(days=30)).scalar()
        or 0,
    }
    return jsonify({"users": [_user_with_posts(s, u) for u in users], "pagination": pagination, "analytics": analytics})


@bp.put("/users")
@require_role(ROLE_ADMIN)
def users_update():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    user_id = payload.get("userId")
    if not user_id:
        return jsonify({"error": "User ID is required"}), 400

    role = payload.get("role")
    if role is not None and role not in ROLES:
        return jsonify({"error": f"Invalid role. Must be one of: {', '.join(ROLES)}"}), 400
    is_active = payload.get("isActive")
    if is_active is not None and not isinstance(is_active, bool):
        return jsonify({"error": "isActive must be a boolean"}), 400

    user = s.get(User, user_id)
    if user is None:
        return jsonify({"error": "User not found"}), 404

    if role:
        user.role = role
    if is_active is not None:
        user.is_active = is_active
    s.commit()
    current_app.logger.info(
        "User %s updated by %s (role=%s, active=%s)", user.clerk_id, g.current_user.clerk_id, user.role, user.is_active
    )
    return jsonify({"user": user_to_dict(user)})
