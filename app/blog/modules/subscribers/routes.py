from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.blog.db import db_session
from app.blog.modules.subscribers.service import (
    ALREADY_SUBSCRIBED,
    REACTIVATED,
    subscribe,
    unsubscribe,
)
from app.blog.utils import is_valid_email

bp = Blueprint("subscribe", __name__)


def _unsubscribe(email: str, *, source: str):
    if not email:
        return jsonify({"error": "Email is required"}), 400
    s = db_session()
    try:
        sub = unsubscribe(s, email, source=source)
        if sub is None:
            return jsonify({"error": "Subscriber not found"}), 404
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error unsubscribing (request_id=%s)", g.request_id)
        return jsonify({"error": "Failed to unsubscribe"}), 500
    return jsonify({"message": "Successfully unsubscribed"})


def _is_unsubscribe_link() -> bool:
    return (request.args.get("action") or "").strip().lower() == "unsubscribe"


@bp.get("/subscribe")
def subscribe_link():
    # Target of the unsubscribe link in outgoing email.
    if not _is_unsubscribe_link():
        return jsonify({"error": "Method not allowed"}), 405
    return _unsubscribe((request.args.get("email") or "").strip(), source="email_link")


@bp.post("/subscribe")
def subscribe_post():
    if _is_unsubscribe_link():
        # RFC 8058 one-click: mailbox providers POST to the List-Unsubscribe URL.
        return _unsubscribe((request.args.get("email") or "").strip(), source="one_click")

    payload = request.get_json(silent=True) or {}
    email = payload.get("email")
    if not is_valid_email(email):
        return jsonify({"error": "Valid email address is required"}), 400

    s = db_session()
    try:
        _sub, outcome = subscribe(s, email)
        if outcome == ALREADY_SUBSCRIBED:
            return jsonify({"error": "Email is already subscribed"}), 409
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error creating subscription (request_id=%s)", g.request_id)
        return jsonify({"error": "Failed to process subscription"}), 500

    if outcome == REACTIVATED:
        return jsonify({"message": "Subscription reactivated successfully"}), 200
    return jsonify({"message": "Successfully subscribed to newsletter"}), 201


@bp.delete("/subscribe")
def subscribe_delete():
    return _unsubscribe((request.args.get("email") or "").strip(), source="website_form")
