"""multi-token accounts and per-application watches

Revision ID: 0003
Revises: 0002
Create Date: 2026-10-19 00:20:00.000000

- account_tokens: one token per (account, application_type, token_type)
  instead of one token per account
- post_watches: uniqueness now includes application_type so the same post can
  be watched separately from debug and production builds of a client
"""

from __future__ import annotations

from alembic import op

revision = "0003"
down_revision = "0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.drop_index("owner_account_id_idx", table_name="account_tokens")
    op.create_index("owner_account_id_idx", "account_tokens", ["owner_account_id"])
    op.create_index(
        "account_tokens_owner_type_idx",
        "account_tokens",
        ["owner_account_id", "application_type", "token_type"],
        unique=True,
    )

    op.drop_index("post_watches_unique_idx", table_name="post_watches")
    op.create_index(
        "post_watches_unique_idx",
        "post_watches",
        ["owner_account_id", "owner_post_descriptor_id", "application_type"],
        unique=True,
    )


def downgrade() -> None:
    # Fails if an account already holds several tokens or watches a post from several applications
    op.drop_index("post_watches_unique_idx", table_name="post_watches")
    op.create_index(
        "post_watches_unique_idx",
        "post_watches",
        ["owner_account_id", "owner_post_descriptor_id"],
        unique=True,
    )

    op.drop_index("account_tokens_owner_type_idx", table_name="account_tokens")
    op.drop_index("owner_account_id_idx", table_name="account_tokens")
    op.create_index("owner_account_id_idx", "account_tokens", ["owner_account_id"], unique=True)
