from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.blog.db import db_session
from app.blog.models import ROLE_ADMIN, ROLE_WRITER
from app.blog.modules.categories.models import Category
from app.blog.modules.categories.service import (
    CategoryConflictError,
    CategoryInUseError,
    category_to_dict,
    create_category,
    delete_category,
    list_categories,
    post_counts,
    update_category,
    validate_category_payload,
)
from app.blog.rbac import require_role
from app.blog.utils import parse_bool, parse_int

bp = Blueprint("categories", __name__)


@bp.get("/categories")
@require_role(ROLE_WRITER)
def categories_list():
    s = db_session()
    categories = list_categories(s)
    if parse_bool(request.args.get("withCounts")):
        counts = post_counts(s, categories)
        return jsonify([category_to_dict(c, post_count=counts[c.id]) for c in categories])
    return jsonify([category_to_dict(c) for c in categories])


@bp.post("/categories")
@require_role(ROLE_ADMIN)
def categories_create():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    errors = validate_category_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    try:
        c = create_category(s, payload, g.current_user.clerk_id)
        s.commit()
    except CategoryConflictError:
        s.rollback()
        return jsonify({"error": "Category name or slug already exists"}), 400
    except Exception:
        s.rollback()
        current_app.logger.exception("Error creating category (request_id=%s)", g.request_id)
        return jsonify({"error": "Failed to create category"}), 500
    return jsonify(category_to_dict(c)), 201


@bp.put("/categories")
@require_role(ROLE_ADMIN)
def categories_update():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    category_id = payload.get("id")
    if not category_id:
        return jsonify({"error": "Category ID required"}), 400
    errors = validate_category_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    c = s.get(Category, category_id)
    if c is None:
        return jsonify({"error": "Category not found"}), 404
    try:
        update_category(s, c, payload, g.current_user.clerk_id)
        s.commit()
    except CategoryConflictError:
        s.rollback()
        return jsonify({"error": "Category name or slug already exists"}), 400
    except Exception:
        s.rollback()
        current_app.logger.exception("Error updating category %s (request_id=%s)", category_id, g.request_id)
        return jsonify({"error": "Failed to update category"}), 500
    return jsonify(category_to_dict(c))


@bp.delete("/categories")
@require_role(ROLE_ADMIN)
def categories_delete():
    s = db_session()
    category_id = parse_int(request.args.get("id"), 0)
    if not category_id:
        return jsonify({"error": "Category ID required"}), 400
    c = s.get(Category, category_id)
    if c is None:
        return jsonify({"error": "Category not found"}), 404
    try:
        delete_category(s, c, g.current_user.clerk_id)
        s.commit()
    except CategoryInUseError:
        s.rollback()
        return jsonify({"error": "Cannot delete category that is being used by posts"}), 400
    except Exception:
        s.rollback()
        current_app.logger.exception("Error deleting category %s (request_id=%s)", category_id, g.request_id)
        return jsonify({"error": "Failed to delete category"}), 500
    return jsonify({"message": "Category deleted successfully"})
