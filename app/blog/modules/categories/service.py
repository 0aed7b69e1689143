from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.blog.activity import log_activity
from app.blog.modules.categories.models import DEFAULT_CATEGORY_COLOR, Category
from app.blog.modules.posts.models import Post
from app.blog.utils import create_slug, isoformat

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class CategoryConflictError(ValueError):
    pass


class CategoryInUseError(ValueError):
    pass


def category_to_dict(c: Category, *, post_count: int | None = None) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "color": c.color,
        "icon": c.icon,
        "createdAt": isoformat(c.created_at),
        "updatedAt": isoformat(c.updated_at),
    }
    if post_count is not None:
        d["postCount"] = post_count
    return d


def validate_category_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    name = str(payload.get("name") or "").strip()
    if not partial and not name:
        errors.append("Name is required.")
    if "name" in payload and partial and not name:
        errors.append("Name cannot be empty.")
    slug = payload.get("slug")
    if slug and create_slug(str(slug)) != str(slug).strip():
        errors.append("Slug may only contain lowercase letters, numbers and dashes.")
    return errors


def _conflict(s: "Session", name: str, slug: str, *, exclude_id: int | None = None) -> Category | None:
    q = s.query(Category).filter(or_(Category.name == name, Category.slug == slug))
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    return q.first()


def list_categories(s: "Session") -> list[Category]:
    return s.query(Category).order_by(Category.created_at.desc(), Category.id.desc()).all()


def post_counts(s: "Session", categories: list[Category]) -> dict[int, int]:
    """Posts per category; a post may reference its category by name or slug."""
    counts: dict[int, int] = {}
    for c in categories:
        counts[c.id] = s.query(Post).filter(Post.category.in_([c.name, c.slug])).count()
    return counts


def create_category(s: "Session", payload: dict, created_by: str | None) -> Category:
    name = str(payload.get("name") or "").strip()
    slug = str(payload.get("slug") or "").strip() or create_slug(name)
    if _conflict(s, name, slug) is not None:
        raise CategoryConflictError(name)

    now = datetime.utcnow()
    c = Category(
        name=name,
        slug=slug,
        description=(payload.get("description") or None),
        color=(payload.get("color") or DEFAULT_CATEGORY_COLOR),
        icon=(payload.get("icon") or None),
        created_at=now,
        updated_at=now,
    )
    s.add(c)
    s.flush()
    log_activity(
        s,
        type="category_created",
        title=f'Created category: "{c.name}"',
        details=f"New category with slug {c.slug}",
        metadata={"categoryId": c.id, "slug": c.slug, "color": c.color},
        created_by=created_by,
    )
    return c


def update_category(s: "Session", c: Category, payload: dict, created_by: str | None) -> Category:
    name = str(payload.get("name") or "").strip() or c.name
    slug = str(payload.get("slug") or "").strip() or c.slug
    if _conflict(s, name, slug, exclude_id=c.id) is not None:
        raise CategoryConflictError(name)

    before = {"name": c.name, "slug": c.slug}
    c.name = name
    c.slug = slug
    if "description" in payload:
        c.description = payload.get("description") or None
    if "color" in payload:
        c.color = payload.get("color") or DEFAULT_CATEGORY_COLOR
    if "icon" in payload:
        c.icon = payload.get("icon") or None
    c.updated_at = datetime.utcnow()
    log_activity(
        s,
        type="category_updated",
        title=f'Updated category: "{c.name}"',
        details="Category details updated",
        metadata={"categoryId": c.id, "before": before, "after": {"name": c.name, "slug": c.slug}},
        created_by=created_by,
    )
    return c


def delete_category(s: "Session", c: Category, created_by: str | None) -> None:
    """Raises CategoryInUseError when any post references the category."""
    in_use = s.query(Post.id).filter(Post.category.in_([c.name, c.slug])).first()
    if in_use is not None:
        raise CategoryInUseError(c.name)
    meta = {"categoryId": c.id, "slug": c.slug}
    name = c.name
    s.delete(c)
    s.flush()
    log_activity(
        s,
        type="category_deleted",
        title=f'Deleted category: "{name}"',
        details="Category removed",
        metadata=meta,
        created_by=created_by,
    )


def seed_default_categories(s: "Session", defaults) -> int:
    """Insert any default category whose slug or name is missing. Returns the number inserted."""
    created = 0
    for d in defaults:
        if _conflict(s, d["name"], d["slug"]) is not None:
            continue
        s.add(
            Category(
                name=d["name"],
                slug=d["slug"],
                description=d.get("description"),
                color=d.get("color") or DEFAULT_CATEGORY_COLOR,
                icon=d.get("icon"),
            )
        )
        s.flush()
        created += 1
    return created
