from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.blog.db import db_session
from app.blog.models import ROLE_WRITER
from app.blog.modules.notifications.service import notify_post_published
from app.blog.modules.posts.service import (
    DuplicateSlugError,
    create_post,
    get_post_by_slug,
    list_published_posts,
    post_to_dict,
    search_posts,
    validate_post_payload,
)
from app.blog.rbac import require_role
from app.blog.utils import parse_bool, parse_int

bp = Blueprint("posts", __name__)


# ---------- Public reads ----------
@bp.get("/posts")
def posts_list():
    s = db_session()
    category = (request.args.get("category") or "").strip() or None
    featured = parse_bool(request.args.get("featured")) is True
    limit = parse_int(request.args.get("limit"), 0) or None
    posts = list_published_posts(s, category=category, featured=featured, limit=limit)
    return jsonify([post_to_dict(p) for p in posts])


@bp.get("/posts/<slug>")
def post_detail(slug: str):
    s = db_session()
    post = get_post_by_slug(s, slug)
    if post is None:
        return jsonify({"error": "Post not found"}), 404
    return jsonify(post_to_dict(post))


@bp.get("/search")
def search():
    q = (request.args.get("q") or "").strip()
    if not q:
        return jsonify({"posts": []})
    posts = search_posts(db_session(), q)
    return jsonify({"posts": [post_to_dict(p, include_content=False) for p in posts]})


# ---------- Writer create ----------
@bp.post("/posts")
@require_role(ROLE_WRITER)
def posts_create():
    s = db_session()
    u = g.current_user
    payload = request.get_json(silent=True) or {}

    errors = validate_post_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    try:
        post = create_post(s, payload, u, log=False)
        s.commit()
    except DuplicateSlugError:
        s.rollback()
        return jsonify({"error": "A post with this slug already exists"}), 409
    except Exception:
        s.rollback()
        current_app.logger.exception("Error creating post (request_id=%s)", g.request_id)
        return jsonify({"error": "Failed to create post"}), 500

    if post.is_published:
        notify_post_published(post.id, created_by=u.clerk_id)
    return jsonify(post_to_dict(post)), 201
