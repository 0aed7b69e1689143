from __future__ import annotations

import html
import math
import re
import unicodedata
from typing import Any

from sqlalchemy.orm import Query

from app.blog.constants import CATEGORY_DISPLAY_NAMES

_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_DASH = re.compile(r"[-\s_]+")
_TAG_RE = re.compile(r"<[^>]*>")


def create_slug(title: str) -> str:
    """Lowercase, ASCII-only, dash-separated slug."""
    value = unicodedata.normalize("NFKD", title or "").encode("ascii", "ignore").decode("ascii")
    value = _SLUG_STRIP.sub("", value).strip().lower()
    return _SLUG_DASH.sub("-", value).strip("-")


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def strip_html(value: str) -> str:
    return _TAG_RE.sub("", value or "")


def calculate_reading_time(content: str) -> int:
    """Minutes at 200 words per minute, never less than one."""
    words = [w for w in _TAG_RE.sub(" ", content or "").split() if w]
    return max(1, math.ceil(len(words) / 200))


def format_reading_time(minutes: int) -> str:
    if minutes == 1:
        return "1 min read"
    return f"{minutes} min read"


def format_category(category: str) -> str:
    if category in CATEGORY_DISPLAY_NAMES:
        return CATEGORY_DISPLAY_NAMES[category]
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), category.replace("-", " "))


_EXCERPT_RULES = (
    (re.compile(r"#{1,6}\s"), ""),
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"`(.*?)`"), r"\1"),
    (re.compile(r"!\[.*?\]\(.*?\)"), ""),
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),
    (re.compile(r"\n"), " "),
)


def extract_excerpt(content: str, max_length: int = 150) -> str:
    """Plain-text excerpt of a markdown body."""
    text = content or ""
    for pattern, repl in _EXCERPT_RULES:
        text = pattern.sub(repl, text)
    return truncate_text(text.strip(), max_length)


_UNICODE_ESCAPES = {
    "\\u003c": "<",
    "\\u003e": ">",
    "\\u0026": "&",
    "\\u0022": '"',
    "\\u0027": "'",
    "\\u002f": "/",
    "\\u003d": "=",
}
_UNICODE_ESCAPE_RE = re.compile("|".join(re.escape(k) for k in _UNICODE_ESCAPES), re.IGNORECASE)


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so user input matches literally. Pair with a backslash escape character."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def unescape_html(text: str) -> str:
    """Undo entity and \\uXXXX escaping that rich-text editors leave in stored HTML."""
    result = html.unescape(text).replace("\xa0", " ")
    return _UNICODE_ESCAPE_RE.sub(lambda m: _UNICODE_ESCAPES[m.group(0).lower()], result)


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and "@" in value and len(value.strip()) > 2


def parse_int(raw: str | None, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    try:
        value = int((raw or "").strip())
    except ValueError:
        return default
    if value < minimum:
        return default
    if maximum is not None and value > maximum:
        return maximum
    return value


def parse_bool(value: Any) -> bool | None:
    """JSON booleans pass through; common string spellings are accepted. None means "not provided"."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("true", "1", "yes", "on"):
            return True
        if v in ("false", "0", "no", "off", ""):
            return False
    return None


def paginate(q: Query, *, page: int, limit: int) -> tuple[list, dict[str, int]]:
    """Apply offset/limit and return (rows, pagination envelope)."""
    total = q.order_by(None).count()
    rows = q.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def isoformat(value) -> str | None:
    if value is None:
        return None
    return value.isoformat()
