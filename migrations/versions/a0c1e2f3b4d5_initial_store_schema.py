"""Initial store schema: users, profile tables, catalogue, blog, orders.

Revision ID: a0c1e2f3b4d5
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a0c1e2f3b4d5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)

    if not insp.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("cognito_subject", sa.String(128), nullable=True),
            sa.Column("password_hash", sa.String(255), nullable=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("role", sa.String(16), nullable=False, server_default="user"),
            sa.Column("status", sa.String(16), nullable=False, server_default="active"),
            sa.Column("avatar_url", sa.String(1024), nullable=True),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("phone_number", sa.String(64), nullable=True),
            sa.Column("address", sa.String(255), nullable=True),
            sa.Column("city", sa.String(128), nullable=True),
            sa.Column("state", sa.String(128), nullable=True),
            sa.Column("postal_code", sa.String(32), nullable=True),
            sa.Column("country", sa.String(128), nullable=True),
            sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("last_login_at", sa.DateTime(), nullable=True),
            sa.Column("suspended_at", sa.DateTime(), nullable=True),
            sa.Column("suspended_by_user_id", sa.Integer(), nullable=True),
            sa.Column("suspension_reason", sa.String(512), nullable=True),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["suspended_by_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("email"),
            sa.UniqueConstraint("cognito_subject"),
        )
        op.create_index("idx_users_role", "users", ["role"])
        op.create_index("idx_users_status", "users", ["status"])
        op.create_index("ix_users_deleted_at", "users", ["deleted_at"])

    if not insp.has_table("user_preferences"):
        op.create_table(
            "user_preferences",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("marketing_emails", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("language", sa.String(16), nullable=True),
            sa.Column("timezone", sa.String(64), nullable=True),
            sa.Column("preferences", JSONType, nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("user_id"),
        )

    if not insp.has_table("login_history"):
        op.create_table(
            "login_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.Column("login_method", sa.String(32), nullable=True),
            sa.Column("successful", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("failure_reason", sa.String(255), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_login_history_user_id", "login_history", ["user_id"])

    if not insp.has_table("activity_logs"):
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("resource_type", sa.String(64), nullable=True),
            sa.Column("resource_id", sa.String(128), nullable=True),
            sa.Column("details", JSONType, nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
        op.create_index("ix_activity_logs_action", "activity_logs", ["action"])

    if not insp.has_table("email_verification_tokens"):
        op.create_table(
            "email_verification_tokens",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("token", sa.String(128), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            *_timestamps(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("token"),
        )
        op.create_index("ix_email_verification_tokens_user_id", "email_verification_tokens", ["user_id"])

    if not insp.has_table("categories"):
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_categories_name", "categories", ["name"])
        op.create_index("ix_categories_deleted_at", "categories", ["deleted_at"])

    if not insp.has_table("templates"):
        op.create_table(
            "templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category_id", sa.Integer(), nullable=True),
            sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("file_key", sa.String(512), nullable=True),
            sa.Column("file_size", sa.Integer(), nullable=True),
            sa.Column("file_type", sa.String(128), nullable=True),
            sa.Column("preview_url", sa.String(1024), nullable=True),
            sa.Column("thumbnail_url", sa.String(1024), nullable=True),
            sa.Column("variables", JSONType, nullable=True),
            sa.Column("downloads", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_templates_category", "templates", ["category_id"])
        op.create_index("idx_templates_active", "templates", ["active"])
        op.create_index("ix_templates_deleted_at", "templates", ["deleted_at"])

    if not insp.has_table("blog_posts"):
        op.create_table(
            "blog_posts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("slug", sa.String(255), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("excerpt", sa.Text(), nullable=True),
            sa.Column("featured_image", sa.String(1024), nullable=True),
            sa.Column("tags", JSONType, nullable=True),
            sa.Column("author_id", sa.Integer(), nullable=False),
            sa.Column("category_id", sa.Integer(), nullable=True),
            sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("published_at", sa.DateTime(), nullable=True),
            sa.Column("meta_title", sa.String(255), nullable=True),
            sa.Column("meta_description", sa.String(512), nullable=True),
            sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("slug"),
        )
        op.create_index("idx_blog_posts_author", "blog_posts", ["author_id"])
        op.create_index("idx_blog_posts_category", "blog_posts", ["category_id"])
        op.create_index("idx_blog_posts_published", "blog_posts", ["published", "published_at"])
        op.create_index("ix_blog_posts_deleted_at", "blog_posts", ["deleted_at"])

    if not insp.has_table("orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("currency", sa.String(8), nullable=False, server_default="usd"),
            sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
            sa.Column("delivery_status", sa.String(16), nullable=False, server_default="pending"),
            sa.Column("stripe_session_id", sa.String(255), nullable=True),
            sa.Column("stripe_payment_intent_id", sa.String(255), nullable=True),
            sa.Column("download_url", sa.String(2048), nullable=True),
            sa.Column("download_expires_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("metadata", JSONType, nullable=True),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["template_id"], ["templates.id"], ondelete="RESTRICT"),
            sa.UniqueConstraint("stripe_session_id"),
        )
        op.create_index("idx_orders_user", "orders", ["user_id"])
        op.create_index("idx_orders_template", "orders", ["template_id"])
        op.create_index("idx_orders_status", "orders", ["status"])
        op.create_index("idx_orders_payment_intent", "orders", ["stripe_payment_intent_id"])
        op.create_index("ix_orders_deleted_at", "orders", ["deleted_at"])


def downgrade() -> None:
    for table in (
        "orders",
        "blog_posts",
        "templates",
        "categories",
        "email_verification_tokens",
        "activity_logs",
        "login_history",
        "user_preferences",
        "users",
    ):
        op.drop_table(table)
