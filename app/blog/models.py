from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from app.blog.modules.posts.models import Post


class Base(DeclarativeBase):
    pass


ROLE_ADMIN = "ADMIN"
ROLE_WRITER = "WRITER"
ROLE_VIEWER = "VIEWER"
ROLES = (ROLE_ADMIN, ROLE_WRITER, ROLE_VIEWER)


class User(Base):
    """
    Local mirror of an identity-provider account.
    Rows are keyed by the provider's subject id (clerk_id); the provider owns credentials.
    """

    __tablename__ = "users"
    __table_args__ = (Index("idx_users_role", "role"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    clerk_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_VIEWER)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_sign_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    posts: Mapped[list["Post"]] = relationship("Post", back_populates="author_user", lazy="select")


class ActivityLog(Base):
    """
    Append-only activity trail shown on the admin dashboard.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("idx_activity_logs_created_at", "created_at"),
        Index("idx_activity_logs_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "post_published"
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)  # small JSON string
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)  # identity subject id
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class AdminSettings(Base):
    """Singleton row with notification preferences."""

    __tablename__ = "admin_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_notify_new_post: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_notify_new_subscriber: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notification_from_email: Mapped[str] = mapped_column(String(320), nullable=False, default="noreply@techblog.com")
    notification_from_name: Mapped[str] = mapped_column(String(255), nullable=False, default="TechBlog")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.blog.modules.posts.models import Post  # noqa: E402,F401
from app.blog.modules.categories.models import Category  # noqa: E402,F401
from app.blog.modules.subscribers.models import Subscriber  # noqa: E402,F401
from app.blog.modules.notifications.models import EmailNotification  # noqa: E402,F401
