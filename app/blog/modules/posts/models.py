from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.blog.models import Base

if TYPE_CHECKING:
    from app.blog.models import User


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        Index("idx_posts_published_created", "is_published", "created_at"),
        Index("idx_posts_category", "category"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    cover_image: Mapped[str] = mapped_column(String(1024), nullable=False, default="")

    # Display name shown on the post; author_id links the account that wrote it (if known).
    author: Mapped[str] = mapped_column(String(255), nullable=False, default="Admin")
    author_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Category name or slug; kept as free text so posts survive category renames.
    category: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    author_user: Mapped["User | None"] = relationship("User", back_populates="posts", lazy="select")
