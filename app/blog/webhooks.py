from __future__ import annotations

import logging

from flask import Blueprint, current_app, request
from sqlalchemy.orm import Session

from app.blog.auth import upsert_user
from app.blog.db import db_session
from app.blog.identity import WebhookVerificationError, profile_from_clerk_user, verify_webhook
from app.blog.models import ROLE_VIEWER, User

bp = Blueprint("webhooks", __name__)
logger = logging.getLogger(__name__)


def handle_user_created(s: Session, data: dict) -> User:
    user, _ = upsert_user(s, profile_from_clerk_user(data), default_role=ROLE_VIEWER)
    logger.info("User %s created in database", user.clerk_id)
    return user


def handle_user_updated(s: Session, data: dict) -> User:
    profile = profile_from_clerk_user(data)
    user, created = upsert_user(s, profile, default_role=ROLE_VIEWER)
    logger.info("User %s %s in database", user.clerk_id, "created" if created else "updated")
    return user


def handle_user_deleted(s: Session, data: dict) -> User | None:
    # Deactivate instead of delete so authored posts keep their author link.
    user = s.query(User).filter(User.clerk_id == str(data.get("id") or "")).one_or_none()
    if user is None:
        logger.info("Delete webhook for unknown user %s", data.get("id"))
        return None
    user.is_active = False
    logger.info("User %s deactivated in database", user.clerk_id)
    return user


_HANDLERS = {
    "user.created": handle_user_created,
    "user.updated": handle_user_updated,
    "user.deleted": handle_user_deleted,
}


@bp.post("/clerk")
def clerk_webhook():
    secret = current_app.config.get("CLERK_WEBHOOK_SECRET") or ""
    if not secret:
        current_app.logger.error("CLERK_WEBHOOK_SECRET is not configured; rejecting webhook")
        return "Webhook secret not configured", 500

    msg_id = request.headers.get("svix-id")
    timestamp = request.headers.get("svix-timestamp")
    signature = request.headers.get("svix-signature")
    if not msg_id or not timestamp or not signature:
        return "Error occurred -- no svix headers", 400

    try:
        evt = verify_webhook(
            secret,
            msg_id=msg_id,
            timestamp=timestamp,
            signature_header=signature,
            body=request.get_data(cache=False),
        )
    except WebhookVerificationError as e:
        current_app.logger.warning("Error verifying webhook %s: %s", msg_id, e)
        return "Error occurred", 400

    event_type = evt.get("type")
    data = evt.get("data") or {}
    current_app.logger.info("Webhook with an ID of %s and type of %s", data.get("id"), event_type)

    handler = _HANDLERS.get(event_type)
    if handler is None:
        current_app.logger.info("Unhandled webhook event type: %s", event_type)
        return "", 200

    s = db_session()
    try:
        handler(s, data)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error handling webhook %s (%s)", msg_id, event_type)
        return "Error occurred while processing webhook", 500
    return "", 200
