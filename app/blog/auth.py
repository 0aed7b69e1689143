from __future__ import annotations

import uuid
from datetime import datetime

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.blog.db import db_session
from app.blog.identity import (
    ClerkClient,
    IdentityError,
    IdentityProfile,
    InvalidToken,
    profile_from_claims,
    verify_session_token,
)
from app.blog.models import ROLE_VIEWER, ROLE_WRITER, User
from app.blog.rbac import require_auth

bp = Blueprint("auth", __name__)

SESSION_COOKIE = "__session"


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization") or ""
    if header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE) or None


def upsert_user(s: Session, profile: IdentityProfile, *, default_role: str = ROLE_VIEWER) -> tuple[User, bool]:
    """
    Create or refresh the local user row for an identity profile.
    Returns (user, created). Existing roles are never changed here.
    """
    now = datetime.utcnow()
    user = s.query(User).filter(User.clerk_id == profile.subject).one_or_none()
    if user:
        user.email = profile.email or user.email
        user.first_name = profile.first_name
        user.last_name = profile.last_name
        user.image_url = profile.image_url
        user.last_sign_in = now
        user.is_active = True
        return user, False
    user = User(
        clerk_id=profile.subject,
        email=profile.email,
        first_name=profile.first_name,
        last_name=profile.last_name,
        image_url=profile.image_url,
        role=default_role,
        is_active=True,
        last_sign_in=now,
    )
    s.add(user)
    s.flush()
    return user, True


def load_current_user() -> None:
    """
    Verifies the session token (if any) and loads g.current_user.
    Unknown subjects are synced from token claims with the default role.
    Also assigns a simple per-request request_id (for log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.auth_subject = None
    g.auth_claims = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    token = _bearer_token()
    if not token:
        return
    try:
        claims = verify_session_token(
            token,
            key=current_app.config.get("AUTH_JWT_KEY") or "",
            algorithms=current_app.config.get("AUTH_JWT_ALGORITHMS") or ["RS256"],
            issuer=current_app.config.get("AUTH_JWT_ISSUER") or None,
        )
    except InvalidToken as e:
        current_app.logger.info("Rejected session token (request_id=%s): %s", g.request_id, e)
        return

    g.auth_subject = str(claims["sub"])
    g.auth_claims = claims
    try:
        s = db_session()
        user = s.query(User).filter(User.clerk_id == g.auth_subject).one_or_none()
        # The explicit sync endpoint picks its own default role.
        if user is None and request.endpoint == "auth.sync_user":
            return
        if user is None:
            user, _ = upsert_user(s, profile_from_claims(claims))
            s.commit()
            current_app.logger.info("Synced new user %s from session token", g.auth_subject)
        g.current_user = user if user.is_active else None
    except SQLAlchemyError as e:
        current_app.logger.error("load_current_user DB error (subject=%s): %s", g.auth_subject, e)
        db_session().rollback()
        g.current_user = None


def _default_role_for_referer(referer: str) -> str:
    # Sign-ups that come through the writer portal start as writers.
    return ROLE_WRITER if "/writer" in referer else ROLE_VIEWER


@bp.post("/sync")
@require_auth
def sync_user():
    s = db_session()
    subject = g.auth_subject
    try:
        secret = current_app.config.get("CLERK_SECRET_KEY") or ""
        if secret:
            client = ClerkClient(secret_key=secret, base_url=current_app.config["CLERK_API_URL"])
            profile = client.get_user(subject)
        else:
            profile = profile_from_claims(g.auth_claims or {"sub": subject})
    except IdentityError as e:
        current_app.logger.warning("Identity lookup failed for %s: %s", subject, e)
        return jsonify({"error": "User not found"}), 404

    try:
        default_role = _default_role_for_referer(request.headers.get("Referer") or "")
        user, created = upsert_user(s, profile, default_role=default_role)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Error syncing user %s", subject)
        return jsonify({"error": "Internal server error"}), 500

    action = "created" if created else "updated"
    message = (
        f"User created successfully with role: {user.role}"
        if created
        else f"User updated successfully. Current role: {user.role}"
    )
    return jsonify({"user": user_to_dict(user), "action": action, "role": user.role, "message": message})


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "clerkId": user.clerk_id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "imageUrl": user.image_url,
        "role": user.role,
        "isActive": user.is_active,
        "lastSignIn": user.last_sign_in.isoformat() if user.last_sign_in else None,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }
