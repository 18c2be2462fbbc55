"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the ledger, the log sink, accounts with their push tokens, threads,
post descriptors, post replies and post watches.

At this revision an account holds a single token and a watch is unique per
(account, post descriptor); see 0003.
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

# BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid alias) on SQLite
BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _cascade_fk(name: str, column: str, target: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column], [target], name=name, onupdate="CASCADE", ondelete="CASCADE"
    )


def upgrade() -> None:
    # ========================================================================
    # OPERATIONAL
    # ========================================================================

    op.create_table(
        "migrations",
        sa.Column("version", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(256), nullable=True),
        sa.Column(
            "applied_on",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("checksum", sa.String(512), nullable=True),
    )

    op.create_table(
        "logs",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("log_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("log_level", sa.String(8), nullable=True),
        sa.Column("target", sa.String(), nullable=True),
        sa.Column("message", sa.String(), nullable=False),
    )
    op.create_index("logs_log_time_idx", "logs", ["log_time"])
    op.create_index("logs_log_level_idx", "logs", ["log_level"])

    # ========================================================================
    # IDENTITY
    # ========================================================================

    op.create_table(
        "accounts",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.String(128), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_on",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("deleted_on", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("accounts_account_id_idx", "accounts", ["account_id"], unique=True)
    op.create_index("accounts_created_on_idx", "accounts", ["created_on"])
    op.create_index("accounts_deleted_on_idx", "accounts", ["deleted_on"])

    op.create_table(
        "account_tokens",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("owner_account_id", sa.BigInteger(), nullable=False),
        sa.Column("token", sa.String(1024), nullable=True),
        sa.Column("application_type", sa.BigInteger(), nullable=False),
        sa.Column("token_type", sa.BigInteger(), nullable=False),
        _cascade_fk("fk_owner_account_id", "owner_account_id", "accounts.id"),
    )
    op.create_index("owner_account_id_idx", "account_tokens", ["owner_account_id"], unique=True)
    op.create_index("token_idx", "account_tokens", ["token"])
    op.create_index(
        "unique_token_idx",
        "account_tokens",
        ["token", "application_type", "token_type"],
        unique=True,
    )

    # ========================================================================
    # CONTENT ADDRESSING
    # ========================================================================

    op.create_table(
        "threads",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("site_name", sa.String(128), nullable=False),
        sa.Column("board_code", sa.String(64), nullable=False),
        sa.Column("thread_no", sa.BigInteger(), nullable=False),
        sa.Column("is_dead", sa.Boolean(), server_default=sa.text("false"), nullable=True),
        sa.Column("last_processed_post_no", sa.BigInteger(), server_default=sa.text("0"), nullable=True),
        sa.Column("last_processed_post_sub_no", sa.BigInteger(), server_default=sa.text("0"), nullable=True),
        sa.Column(
            "created_on",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("deleted_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_modified", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "threads_unique_id_idx",
        "threads",
        ["site_name", "board_code", "thread_no"],
        unique=True,
    )

    op.create_table(
        "post_descriptors",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("owner_thread_id", sa.BigInteger(), nullable=False),
        sa.Column("post_no", sa.BigInteger(), nullable=False),
        sa.Column("post_sub_no", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        _cascade_fk("fk_owner_thread_id", "owner_thread_id", "threads.id"),
    )
    op.create_index(
        "post_descriptors_unique_id_idx",
        "post_descriptors",
        ["owner_thread_id", "post_no", "post_sub_no"],
        unique=True,
    )

    # ========================================================================
    # RELATIONSHIPS
    # ========================================================================

    op.create_table(
        "post_replies",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("owner_account_id", sa.BigInteger(), nullable=False),
        sa.Column("owner_post_descriptor_id", sa.BigInteger(), nullable=False),
        sa.Column("reply_to_post_descriptor_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "notification_delivery_attempt",
            sa.SmallInteger(),
            server_default=sa.text("0"),
            nullable=True,
        ),
        sa.Column("notification_delivered_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_on",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("deleted_on", sa.DateTime(timezone=True), nullable=True),
        _cascade_fk("fk_owner_account_id", "owner_account_id", "accounts.id"),
        _cascade_fk("fk_owner_post_descriptor_id", "owner_post_descriptor_id", "post_descriptors.id"),
        _cascade_fk(
            "fk_reply_to_post_descriptor_id", "reply_to_post_descriptor_id", "post_descriptors.id"
        ),
    )
    op.create_index(
        "post_replies_unique_id_idx",
        "post_replies",
        ["owner_account_id", "owner_post_descriptor_id", "reply_to_post_descriptor_id"],
        unique=True,
    )
    # Delivery worker scans undelivered replies oldest first
    op.create_index(
        "post_replies_undelivered_idx",
        "post_replies",
        ["notification_delivered_on", "created_on"],
    )

    op.create_table(
        "post_watches",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("owner_account_id", sa.BigInteger(), nullable=False),
        sa.Column("owner_post_descriptor_id", sa.BigInteger(), nullable=False),
        sa.Column("application_type", sa.BigInteger(), server_default=sa.text("-1"), nullable=False),
        _cascade_fk("fk_account_id", "owner_account_id", "accounts.id"),
        _cascade_fk("fk_owner_post_descriptor_id", "owner_post_descriptor_id", "post_descriptors.id"),
    )
    op.create_index("post_watches_owner_account_id_idx", "post_watches", ["owner_account_id"])
    op.create_index(
        "post_watches_owner_post_descriptor_id_idx", "post_watches", ["owner_post_descriptor_id"]
    )
    op.create_index(
        "post_watches_unique_idx",
        "post_watches",
        ["owner_account_id", "owner_post_descriptor_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_table("post_watches")
    op.drop_table("post_replies")
    op.drop_table("post_descriptors")
    op.drop_table("threads")
    op.drop_table("account_tokens")
    op.drop_table("accounts")
    op.drop_table("logs")
    op.drop_table("migrations")
