from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.blog.db import db_session
from app.blog.models import ROLE_WRITER
from app.blog.modules.notifications.service import notify_post_published
from app.blog.modules.posts.models import Post
from app.blog.modules.posts.service import (
    POST_STATUSES,
    DuplicateSlugError,
    admin_posts_query,
    create_post,
    delete_post,
    post_to_dict,
    update_post,
    validate_post_payload,
)
from app.blog.rbac import require_role
from app.blog.utils import paginate, parse_int

bp = Blueprint("admin_posts", __name__)

# Admin form may omit author (defaults to "Admin") and slug (derived from title).
_ADMIN_REQUIRED = ("title", "description", "content", "coverImage", "category")


# ---------- List ----------
@bp.get("/posts")
@require_role(ROLE_WRITER)
def posts_list():
    s = db_session()
    page = parse_int(request.args.get("page"), 1)
    limit = parse_int(request.args.get("limit"), 10, maximum=100)
    status = (request.args.get("status") or "all").strip()
    if status not in POST_STATUSES:
        status = "all"
    featured = (request.args.get("featured") or "all").strip()
    if featured not in ("all", "true", "false"):
        featured = "all"

    q = admin_posts_query(
        s,
        search=(request.args.get("search") or "").strip(),
        category=(request.args.get("category") or "").strip(),
        status=status,
        featured=featured,
    )
    posts, pagination = paginate(q, page=page, limit=limit)
    return jsonify({"posts": [post_to_dict(p) for p in posts], "pagination": pagination})


# ---------- Create ----------
@bp.post("/posts")
@require_role(ROLE_WRITER)
def posts_create():
    s = db_session()
    u = g.current_user
    payload = request.get_json(silent=True) or {}

    errors = validate_post_payload(payload, required=_ADMIN_REQUIRED)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    try:
        post = create_post(s, payload, u)
        s.commit()
    except DuplicateSlugError:
        s.rollback()
        return jsonify({"error": "A post with this slug already exists"}), 400
    except Exception:
        s.rollback()
        current_app.logger.exception("Error creating post (request_id=%s)", g.request_id)
        return jsonify({"error": "Failed to create post"}), 500

    if post.is_published:
        notify_post_published(post.id, created_by=u.clerk_id)
    return jsonify(post_to_dict(post)), 201


# ---------- Update ----------
@bp.put("/posts")
@require_role(ROLE_WRITER)
def posts_update():
    s = db_session()
    u = g.current_user
    payload = request.get_json(silent=True) or {}

    post_id = payload.get("id")
    if not post_id:
        return jsonify({"error": "Post ID is required"}), 400
    errors = validate_post_payload(payload, required=())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    post = s.get(Post, post_id)
    if post is None:
        return jsonify({"error": "Post not found"}), 404

    try:
        became_published = update_post(s, post, payload, u)
        s.commit()
    except DuplicateSlugError:
        s.rollback()
        return jsonify({"error": "A post with this slug already exists"}), 400
    except Exception:
        s.rollback()
        current_app.logger.exception("Error updating post %s (request_id=%s)", post_id, g.request_id)
        return jsonify({"error": "Failed to update post"}), 500

    if became_published:
        notify_post_published(post.id, created_by=u.clerk_id)
    return jsonify(post_to_dict(post))


# ---------- Delete ----------
@bp.delete("/posts")
@require_role(ROLE_WRITER)
def posts_delete():
    s = db_session()
    post_id = parse_int(request.args.get("id"), 0)
    if not post_id:
        return jsonify({"error": "Post ID is required"}), 400
    post = s.get(Post, post_id)
    if post is None:
        return jsonify({"error": "Post not found"}), 404
    try:
        delete_post(s, post, g.current_user)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error deleting post %s (request_id=%s)", post_id, g.request_id)
        return jsonify({"error": "Failed to delete post"}), 500
    return jsonify({"message": "Post deleted successfully"})
