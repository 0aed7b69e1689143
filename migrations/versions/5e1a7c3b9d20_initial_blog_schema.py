"""initial blog schema

Revision ID: 5e1a7c3b9d20
Revises:
Create Date: 2026-10-19 09:12:40.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5e1a7c3b9d20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, posts, categories, subscribers, email_notifications, activity_logs, admin_settings."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("clerk_id", sa.String(128), nullable=False, unique=True),
            sa.Column("email", sa.String(320), nullable=False, server_default=""),
            sa.Column("first_name", sa.String(128), nullable=True),
            sa.Column("last_name", sa.String(128), nullable=True),
            sa.Column("image_url", sa.String(1024), nullable=True),
            sa.Column("role", sa.String(16), nullable=False, server_default="VIEWER"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("last_sign_in", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_users_role", "users", ["role"])

    if "posts" not in existing_tables:
        op.create_table(
            "posts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(512), nullable=False),
            sa.Column("slug", sa.String(255), nullable=False, unique=True),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("content", sa.Text(), nullable=False, server_default=""),
            sa.Column("cover_image", sa.String(1024), nullable=False, server_default=""),
            sa.Column("author", sa.String(255), nullable=False, server_default="Admin"),
            sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("category", sa.String(128), nullable=False, server_default=""),
            sa.Column("tags", sa.JSON(), nullable=False),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_posts_published_created", "posts", ["is_published", "created_at"])
        op.create_index("idx_posts_category", "posts", ["category"])

    if "categories" not in existing_tables:
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(128), nullable=False, unique=True),
            sa.Column("slug", sa.String(128), nullable=False, unique=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("color", sa.String(32), nullable=False, server_default="#60a5fa"),
            sa.Column("icon", sa.String(64), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "subscribers" not in existing_tables:
        op.create_table(
            "subscribers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("subscribed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_subscribers_active", "subscribers", ["is_active"])

    if "email_notifications" not in existing_tables:
        op.create_table(
            "email_notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("subject", sa.String(512), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("recipient_type", sa.String(16), nullable=False, server_default="active"),
            sa.Column("recipient_list", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
            sa.Column("sent_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("scheduled_at", sa.DateTime(), nullable=True),
            sa.Column("sent_at", sa.DateTime(), nullable=True),
            sa.Column("created_by", sa.String(128), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_email_notifications_status", "email_notifications", ["status"])
        op.create_index("idx_email_notifications_scheduled_at", "email_notifications", ["scheduled_at"])

    if "activity_logs" not in existing_tables:
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("type", sa.String(64), nullable=False),
            sa.Column("title", sa.String(512), nullable=False),
            sa.Column("details", sa.Text(), nullable=True),
            sa.Column("metadata", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(128), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_activity_logs_created_at", "activity_logs", ["created_at"])
        op.create_index("idx_activity_logs_type", "activity_logs", ["type"])

    if "admin_settings" not in existing_tables:
        op.create_table(
            "admin_settings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("auto_notify_new_post", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("auto_notify_new_subscriber", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("notification_from_email", sa.String(320), nullable=False, server_default="noreply@techblog.com"),
            sa.Column("notification_from_name", sa.String(255), nullable=False, server_default="TechBlog"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )


def downgrade() -> None:
    for table in (
        "admin_settings",
        "activity_logs",
        "email_notifications",
        "subscribers",
        "categories",
        "posts",
        "users",
    ):
        op.drop_table(table)
