from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.blog.models import ROLE_ADMIN, ROLE_VIEWER, ROLE_WRITER, User

# Higher rank includes everything below it.
_ROLE_RANK = {ROLE_VIEWER: 1, ROLE_WRITER: 2, ROLE_ADMIN: 3}


def has_role(user: User | None, required_role: str) -> bool:
    if not user or not user.is_active:
        return False
    return _ROLE_RANK.get(user.role, 0) >= _ROLE_RANK[required_role]


def is_admin(user: User | None) -> bool:
    return has_role(user, ROLE_ADMIN)


def is_writer(user: User | None) -> bool:
    return has_role(user, ROLE_WRITER)


def require_role(required_role: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            # No verified session token → 401
            if not getattr(g, "auth_subject", None):
                return jsonify({"error": "Unauthorized"}), 401
            user: User | None = getattr(g, "current_user", None)
            # Authenticated but unsynced, deactivated, or under-privileged → 403
            if not has_role(user, required_role):
                g.missing_role = required_role
                return jsonify({"error": f"Access denied. Required role: {required_role}"}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Any verified identity, synced or not."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not getattr(g, "auth_subject", None):
            return jsonify({"error": "Unauthorized"}), 401
        return fn(*args, **kwargs)

    return wrapped
