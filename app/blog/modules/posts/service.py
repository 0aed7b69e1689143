from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import String, cast, or_

from app.blog.activity import log_activity
from app.blog.constants import SEARCH_RESULT_LIMIT
from app.blog.utils import calculate_reading_time, create_slug, escape_like, isoformat, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.blog.models import User
    from app.blog.modules.posts.models import Post


REQUIRED_FIELDS = ("title", "slug", "description", "content", "coverImage", "author", "category")

POST_STATUSES = ("all", "published", "draft")


class DuplicateSlugError(ValueError):
    pass


def post_to_dict(post: "Post", *, include_content: bool = True) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "description": post.description,
        "coverImage": post.cover_image,
        "author": post.author,
        "authorId": post.author_id,
        "category": post.category,
        "tags": list(post.tags or []),
        "isPublished": post.is_published,
        "isFeatured": post.is_featured,
        "createdAt": isoformat(post.created_at),
        "updatedAt": isoformat(post.updated_at),
    }
    if include_content:
        d["content"] = post.content
        d["readingTime"] = calculate_reading_time(post.content)
    return d


def normalize_tags(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        return []
    seen: list[str] = []
    for t in raw:
        t = str(t).strip()
        if t and t not in seen:
            seen.append(t)
    return seen


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


def validate_post_payload(payload: dict, *, required: tuple[str, ...] = REQUIRED_FIELDS) -> list[str]:
    """Returns list of errors."""
    errors: list[str] = []
    missing = [k for k in required if not _text(payload, k)]
    if missing:
        errors.append("Missing required fields")
    slug = _text(payload, "slug")
    if slug and create_slug(slug) != slug:
        errors.append("Slug may only contain lowercase letters, numbers and dashes.")
    if "tags" in payload and payload["tags"] is not None and not isinstance(payload["tags"], (list, str)):
        errors.append("Tags must be a list of strings.")
    return errors


def get_post_by_slug(s: "Session", slug: str) -> "Post | None":
    from app.blog.modules.posts.models import Post

    return s.query(Post).filter(Post.slug == slug).one_or_none()


def slug_taken(s: "Session", slug: str, *, exclude_id: int | None = None) -> bool:
    existing = get_post_by_slug(s, slug)
    return existing is not None and existing.id != exclude_id


def list_published_posts(
    s: "Session", *, category: str | None = None, featured: bool = False, limit: int | None = None
) -> list["Post"]:
    from app.blog.modules.posts.models import Post

    q = s.query(Post).filter(Post.is_published.is_(True))
    if category:
        q = q.filter(Post.category == category)
    if featured:
        q = q.filter(Post.is_featured.is_(True))
    q = q.order_by(Post.created_at.desc(), Post.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def _tag_match(term: str):
    from app.blog.modules.posts.models import Post

    # Tags are a JSON array; match the encoded element exactly, as the JSON column serialises it.
    return cast(Post.tags, String).like(f"%{escape_like(json.dumps(term))}%", escape="\\")


def search_posts(s: "Session", term: str) -> list["Post"]:
    from app.blog.modules.posts.models import Post

    term = (term or "").strip()
    if not term:
        return []
    like = f"%{escape_like(term)}%"
    return (
        s.query(Post)
        .filter(Post.is_published.is_(True))
        .filter(
            or_(
                Post.title.ilike(like, escape="\\"),
                Post.description.ilike(like, escape="\\"),
                Post.content.ilike(like, escape="\\"),
                Post.category.ilike(like, escape="\\"),
                Post.author.ilike(like, escape="\\"),
                _tag_match(term),
            )
        )
        .order_by(Post.is_featured.desc(), Post.created_at.desc(), Post.id.desc())
        .limit(SEARCH_RESULT_LIMIT)
        .all()
    )


def admin_posts_query(
    s: "Session",
    *,
    search: str = "",
    category: str = "",
    status: str = "all",
    featured: str = "all",
) -> "Query":
    from app.blog.modules.posts.models import Post

    q = s.query(Post)
    if search:
        like = f"%{escape_like(search)}%"
        q = q.filter(
            or_(
                Post.title.ilike(like, escape="\\"),
                Post.description.ilike(like, escape="\\"),
                Post.content.ilike(like, escape="\\"),
                Post.author.ilike(like, escape="\\"),
                _tag_match(search),
            )
        )
    if category and category != "all":
        q = q.filter(Post.category == category)
    if status != "all":
        q = q.filter(Post.is_published.is_(status == "published"))
    if featured != "all":
        q = q.filter(Post.is_featured.is_(featured == "true"))
    return q.order_by(Post.created_at.desc(), Post.id.desc())


def create_post(
    s: "Session",
    payload: dict,
    user: "User | None",
    *,
    default_author: str = "Admin",
    log: bool = True,
) -> "Post":
    """Insert a post. Raises DuplicateSlugError when the slug is in use."""
    from app.blog.modules.posts.models import Post

    slug = _text(payload, "slug") or create_slug(_text(payload, "title"))
    if slug_taken(s, slug):
        raise DuplicateSlugError(slug)

    now = datetime.utcnow()
    is_published = bool(parse_bool(payload.get("isPublished")))
    post = Post(
        title=_text(payload, "title"),
        slug=slug,
        description=_text(payload, "description"),
        content=payload.get("content") or "",
        cover_image=_text(payload, "coverImage"),
        author=_text(payload, "author") or default_author,
        author_id=user.id if user else None,
        category=_text(payload, "category"),
        tags=normalize_tags(payload.get("tags")),
        is_featured=bool(parse_bool(payload.get("isFeatured"))),
        is_published=is_published,
        created_at=now,
        updated_at=now,
    )
    s.add(post)
    s.flush()

    if log:
        log_activity(
            s,
            type="post_published" if is_published else "post_created",
            title=f'Published new post: "{post.title}"' if is_published else f'Created new draft post: "{post.title}"',
            details=f"{'Published' if is_published else 'Created'} post in {post.category} category",
            metadata={
                "postId": post.id,
                "postSlug": post.slug,
                "category": post.category,
                "tags": post.tags,
                "author": post.author,
            },
            created_by=user.clerk_id if user else None,
        )
    return post


def update_post(s: "Session", post: "Post", payload: dict, user: "User | None") -> bool:
    """
    Apply the keys present in `payload`. Returns True when the post moved from draft to published.
    Raises DuplicateSlugError when the new slug belongs to another post.
    """
    new_slug = _text(payload, "slug")
    if new_slug and new_slug != post.slug and slug_taken(s, new_slug, exclude_id=post.id):
        raise DuplicateSlugError(new_slug)

    was_published = post.is_published
    was_featured = post.is_featured

    for key, attr in (
        ("title", "title"),
        ("description", "description"),
        ("coverImage", "cover_image"),
        ("author", "author"),
        ("category", "category"),
    ):
        if key in payload and payload[key] is not None:
            setattr(post, attr, _text(payload, key))
    if new_slug:
        post.slug = new_slug
    if "content" in payload and payload["content"] is not None:
        post.content = payload["content"]
    if "tags" in payload:
        post.tags = normalize_tags(payload.get("tags"))
    published = parse_bool(payload.get("isPublished"))
    if published is not None:
        post.is_published = published
    featured = parse_bool(payload.get("isFeatured"))
    if featured is not None:
        post.is_featured = featured
    post.updated_at = datetime.utcnow()

    created_by = user.clerk_id if user else None
    became_published = not was_published and post.is_published
    if became_published:
        log_activity(
            s,
            type="post_published",
            title=f'Published post: "{post.title}"',
            details="Post moved from draft to published status",
            metadata={
                "postId": post.id,
                "postSlug": post.slug,
                "category": post.category,
                "previousStatus": "draft",
                "newStatus": "published",
            },
            created_by=created_by,
        )
    elif was_featured != post.is_featured:
        verb = "Featured" if post.is_featured else "Unfeatured"
        log_activity(
            s,
            type="post_featured" if post.is_featured else "post_unfeatured",
            title=f'{verb} post: "{post.title}"',
            details=f"Post {'added to' if post.is_featured else 'removed from'} featured section",
            metadata={
                "postId": post.id,
                "postSlug": post.slug,
                "category": post.category,
                "featured": post.is_featured,
            },
            created_by=created_by,
        )
    else:
        log_activity(
            s,
            type="post_updated",
            title=f'Updated post: "{post.title}"',
            details="Post content and metadata updated",
            metadata={"postId": post.id, "postSlug": post.slug, "category": post.category, "tags": post.tags},
            created_by=created_by,
        )
    return became_published


def delete_post(s: "Session", post: "Post", user: "User | None") -> None:
    meta = {"postId": post.id, "postSlug": post.slug, "category": post.category}
    title = post.title
    s.delete(post)
    s.flush()
    log_activity(
        s,
        type="post_deleted",
        title=f'Deleted post: "{title}"',
        details="Post permanently removed from the system",
        metadata=meta,
        created_by=user.clerk_id if user else None,
    )
