from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.blog.activity import log_activity
from app.blog.modules.subscribers.models import Subscriber
from app.blog.utils import escape_like, is_valid_email, isoformat, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session


SUBSCRIBER_STATUSES = ("all", "active", "inactive")

# subscribe() outcomes
SUBSCRIBED = "subscribed"
REACTIVATED = "reactivated"
ALREADY_SUBSCRIBED = "already_subscribed"


class DuplicateEmailError(ValueError):
    pass


def normalize_email(raw: Any) -> str:
    return str(raw or "").strip().lower()


def subscriber_to_dict(sub: Subscriber) -> dict[str, Any]:
    return {
        "id": sub.id,
        "email": sub.email,
        "isActive": sub.is_active,
        "subscribedAt": isoformat(sub.subscribed_at),
        "updatedAt": isoformat(sub.updated_at),
    }


def get_by_email(s: "Session", email: str) -> Subscriber | None:
    return s.query(Subscriber).filter(Subscriber.email == normalize_email(email)).one_or_none()


def subscribe(s: "Session", email: str, *, source: str = "website_form") -> tuple[Subscriber, str]:
    """
    Public sign-up. Returns (subscriber, outcome); an active duplicate is returned untouched
    with ALREADY_SUBSCRIBED.
    """
    email = normalize_email(email)
    existing = get_by_email(s, email)
    if existing is not None:
        if existing.is_active:
            return existing, ALREADY_SUBSCRIBED
        existing.is_active = True
        existing.updated_at = datetime.utcnow()
        log_activity(
            s,
            type="subscriber_activated",
            title=f"Subscriber reactivated: {email}",
            details="Subscriber reactivated their subscription through the website",
            metadata={"subscriberId": existing.id, "email": email, "source": source, "action": "reactivated"},
        )
        return existing, REACTIVATED

    now = datetime.utcnow()
    sub = Subscriber(email=email, is_active=True, subscribed_at=now, updated_at=now)
    s.add(sub)
    s.flush()
    log_activity(
        s,
        type="subscriber_added",
        title=f"New subscriber joined: {email}",
        details="New subscriber joined through the website subscription form",
        metadata={"subscriberId": sub.id, "email": email, "source": source, "action": "subscribed"},
    )
    return sub, SUBSCRIBED


def unsubscribe(s: "Session", email: str, *, source: str = "website_form") -> Subscriber | None:
    """Deactivates (never deletes). Returns None for an unknown address."""
    sub = get_by_email(s, email)
    if sub is None:
        return None
    if sub.is_active:
        sub.is_active = False
        sub.updated_at = datetime.utcnow()
        log_activity(
            s,
            type="subscriber_deactivated",
            title=f"Subscriber unsubscribed: {sub.email}",
            details="Subscriber unsubscribed through the website",
            metadata={"subscriberId": sub.id, "email": sub.email, "source": source, "action": "unsubscribed"},
        )
    return sub


# ---------- Admin ----------
def admin_subscribers_query(s: "Session", *, search: str = "", status: str = "all") -> "Query":
    q = s.query(Subscriber)
    if search:
        q = q.filter(Subscriber.email.ilike(f"%{escape_like(search)}%", escape="\\"))
    if status != "all":
        q = q.filter(Subscriber.is_active.is_(status == "active"))
    return q.order_by(Subscriber.subscribed_at.desc(), Subscriber.id.desc())


def validate_subscriber_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if "email" in payload or not partial:
        if not is_valid_email(payload.get("email")):
            errors.append("Valid email address is required")
    if payload.get("isActive") is not None and parse_bool(payload["isActive"]) is None:
        errors.append("isActive must be a boolean")
    return errors


def create_subscriber(s: "Session", payload: dict, created_by: str | None) -> Subscriber:
    email = normalize_email(payload.get("email"))
    if get_by_email(s, email) is not None:
        raise DuplicateEmailError(email)
    is_active = parse_bool(payload.get("isActive"))
    now = datetime.utcnow()
    sub = Subscriber(email=email, is_active=True if is_active is None else is_active, subscribed_at=now, updated_at=now)
    s.add(sub)
    s.flush()
    log_activity(
        s,
        type="subscriber_added",
        title=f"Subscriber added by admin: {email}",
        details="Subscriber added from the admin dashboard",
        metadata={"subscriberId": sub.id, "email": email, "source": "admin"},
        created_by=created_by,
    )
    return sub


def update_subscriber(s: "Session", sub: Subscriber, payload: dict, created_by: str | None) -> Subscriber:
    if payload.get("email"):
        email = normalize_email(payload["email"])
        other = get_by_email(s, email)
        if other is not None and other.id != sub.id:
            raise DuplicateEmailError(email)
        sub.email = email
    active = parse_bool(payload.get("isActive"))
    if active is not None:
        if active != sub.is_active:
            sub.is_active = active
            log_activity(
                s,
                type="subscriber_activated" if active else "subscriber_deactivated",
                title=f"Subscriber {'activated' if active else 'deactivated'} by admin: {sub.email}",
                details="Subscription status changed from the admin dashboard",
                metadata={"subscriberId": sub.id, "email": sub.email, "source": "admin"},
                created_by=created_by,
            )
    sub.updated_at = datetime.utcnow()
    return sub


def delete_subscriber(s: "Session", sub: Subscriber, created_by: str | None) -> None:
    meta = {"subscriberId": sub.id, "email": sub.email, "source": "admin"}
    email = sub.email
    s.delete(sub)
    s.flush()
    log_activity(
        s,
        type="subscriber_removed",
        title=f"Subscriber removed: {email}",
        details="Subscriber permanently deleted from the admin dashboard",
        metadata=meta,
        created_by=created_by,
    )
