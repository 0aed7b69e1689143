from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.blog.db import db_session
from app.blog.models import ROLE_ADMIN
from app.blog.modules.subscribers.models import Subscriber
from app.blog.modules.subscribers.service import (
    SUBSCRIBER_STATUSES,
    DuplicateEmailError,
    admin_subscribers_query,
    create_subscriber,
    delete_subscriber,
    subscriber_to_dict,
    update_subscriber,
    validate_subscriber_payload,
)
from app.blog.rbac import require_role
from app.blog.utils import paginate, parse_int

bp = Blueprint("admin_subscribers", __name__)


@bp.get("/subscribers")
@require_role(ROLE_ADMIN)
def subscribers_list():
    s = db_session()
    page = parse_int(request.args.get("page"), 1)
    limit = parse_int(request.args.get("limit"), 20, maximum=200)
    status = (request.args.get("status") or "all").strip()
    if status not in SUBSCRIBER_STATUSES:
        status = "all"
    q = admin_subscribers_query(s, search=(request.args.get("search") or "").strip(), status=status)
    rows, pagination = paginate(q, page=page, limit=limit)
    return jsonify({"subscribers": [subscriber_to_dict(r) for r in rows], "pagination": pagination})


@bp.post("/subscribers")
@require_role(ROLE_ADMIN)
def subscribers_create():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    errors = validate_subscriber_payload(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400
    try:
        sub = create_subscriber(s, payload, g.current_user.clerk_id)
        s.commit()
    except DuplicateEmailError:
        s.rollback()
        return jsonify({"error": "Email already exists"}), 400
    except Exception:
        s.rollback()
        current_app.logger.exception("Error creating subscriber (request_id=%s)", g.request_id)
        return jsonify({"error": "Failed to create subscriber"}), 500
    return jsonify(subscriber_to_dict(sub)), 201


@bp.put("/subscribers")
@require_role(ROLE_ADMIN)
def subscribers_update():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    sub_id = payload.get("id")
    if not sub_id:
        return jsonify({"error": "Subscriber ID required"}), 400
    errors = validate_subscriber_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0]}), 400
    sub = s.get(Subscriber, sub_id)
    if sub is None:
        return jsonify({"error": "Subscriber not found"}), 404
    try:
        update_subscriber(s, sub, payload, g.current_user.clerk_id)
        s.commit()
    except DuplicateEmailError:
        s.rollback()
        return jsonify({"error": "Email already exists"}), 400
    except Exception:
        s.rollback()
        current_app.logger.exception("Error updating subscriber %s (request_id=%s)", sub_id, g.request_id)
        return jsonify({"error": "Failed to update subscriber"}), 500
    return jsonify(subscriber_to_dict(sub))


@bp.delete("/subscribers")
@require_role(ROLE_ADMIN)
def subscribers_delete():
    s = db_session()
    sub_id = parse_int(request.args.get("id"), 0)
    if not sub_id:
        return jsonify({"error": "Subscriber ID required"}), 400
    sub = s.get(Subscriber, sub_id)
    if sub is None:
        return jsonify({"error": "Subscriber not found"}), 404
    try:
        delete_subscriber(s, sub, g.current_user.clerk_id)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error deleting subscriber %s (request_id=%s)", sub_id, g.request_id)
        return jsonify({"error": "Failed to delete subscriber"}), 500
    return jsonify({"message": "Subscriber deleted successfully"})
