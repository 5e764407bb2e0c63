"""init tracker schema

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261017_000001"
down_revision = None
branch_labels = None
depends_on = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def _request_fk() -> sa.Column:
    return sa.Column(
        "request_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "users",
        _id_column(),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default=sa.text("'user'")),
        *_timestamps(),
    )

    op.create_table(
        "customers",
        _id_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("company", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("phone", sa.String(length=40)),
        *_timestamps(),
    )

    op.create_table(
        "tags",
        _id_column(),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("color", sa.String(length=16), nullable=False, server_default=sa.text("'#3498db'")),
        sa.Column("category", sa.String(length=32), nullable=False, server_default=sa.text("'other'")),
        *_timestamps(),
    )
    op.create_index("idx_tags_category", "tags", ["category"])

    op.create_table(
        "counters",
        sa.Column("name", sa.String(length=64), primary_key=True),
        sa.Column("value", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
    )
    op.execute("INSERT INTO counters (name, value) VALUES ('requests', 0)")

    op.create_table(
        "requests",
        _id_column(),
        sa.Column("sequence_number", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("request_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("reporter", sa.String(length=200), nullable=False, server_default=sa.text("''")),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'new'")),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("parent_request_id", postgresql.UUID(as_uuid=True)),
        sa.Column("custom_fields", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("created_by", postgresql.UUID(as_uuid=True)),
        sa.Column("updated_by", postgresql.UUID(as_uuid=True)),
        *_timestamps(),
    )
    op.create_index("idx_requests_status", "requests", ["status"])
    op.create_index("idx_requests_priority", "requests", ["priority"])
    op.create_index("idx_requests_created_at", "requests", ["created_at"])

    op.create_table(
        "request_customers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _request_fk(),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("idx_request_customers_request", "request_customers", ["request_id"])
    op.create_index("idx_request_customers_customer", "request_customers", ["customer_id"])

    op.create_table(
        "request_tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _request_fk(),
        sa.Column("tag_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("idx_request_tags_request", "request_tags", ["request_id"])
    op.create_index("idx_request_tags_tag", "request_tags", ["tag_id"])

    op.create_table(
        "request_relations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _request_fk(),
        sa.Column("related_request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("idx_request_relations_request", "request_relations", ["request_id"])

    op.create_table(
        "request_comments",
        _id_column(),
        _request_fk(),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "attachments",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_request_comments_request", "request_comments", ["request_id", "position"])

    op.create_table(
        "request_history",
        _id_column(),
        _request_fk(),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("field", sa.String(length=32), nullable=False),
        sa.Column("old_value", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("new_value", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("changed_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_request_history_request", "request_history", ["request_id", "position"])


def downgrade() -> None:
    op.drop_index("idx_request_history_request", table_name="request_history")
    op.drop_table("request_history")
    op.drop_index("idx_request_comments_request", table_name="request_comments")
    op.drop_table("request_comments")
    op.drop_index("idx_request_relations_request", table_name="request_relations")
    op.drop_table("request_relations")
    op.drop_index("idx_request_tags_tag", table_name="request_tags")
    op.drop_index("idx_request_tags_request", table_name="request_tags")
    op.drop_table("request_tags")
    op.drop_index("idx_request_customers_customer", table_name="request_customers")
    op.drop_index("idx_request_customers_request", table_name="request_customers")
    op.drop_table("request_customers")
    op.drop_index("idx_requests_created_at", table_name="requests")
    op.drop_index("idx_requests_priority", table_name="requests")
    op.drop_index("idx_requests_status", table_name="requests")
    op.drop_table("requests")
    op.drop_table("counters")
    op.drop_index("idx_tags_category", table_name="tags")
    op.drop_table("tags")
    op.drop_table("customers")
    op.drop_table("users")
