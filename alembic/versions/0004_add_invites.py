"""add invites table

Revision ID: 0004
Revises: 0003
Create Date: 2026-10-19 00:30:00.000000

- Single-use invites; accepting one creates a trial account
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0004"
down_revision = "0003"
branch_labels = None
depends_on = None

BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "invites",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("invite_id", sa.String(256), nullable=False),
        sa.Column("expires_on", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_on",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("invites_invite_id_idx", "invites", ["invite_id"], unique=True)
    # Cleanup scans unaccepted invites by expiry
    op.create_index("invites_expires_on_idx", "invites", ["expires_on"])


def downgrade() -> None:
    op.drop_index("invites_expires_on_idx", table_name="invites")
    op.drop_index("invites_invite_id_idx", table_name="invites")
    op.drop_table("invites")
