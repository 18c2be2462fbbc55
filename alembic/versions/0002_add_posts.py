"""add posts table

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 00:10:00.000000

- Content/lifecycle row layered one-to-one on post_descriptors
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "posts",
        sa.Column("id", BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("owner_post_descriptor_id", sa.BigInteger(), nullable=False),
        sa.Column("is_dead", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_on",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("deleted_on", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["owner_post_descriptor_id"],
            ["post_descriptors.id"],
            name="fk_posts_owner_post_descriptor_id",
            onupdate="CASCADE",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "posts_owner_post_descriptor_id_idx", "posts", ["owner_post_descriptor_id"], unique=True
    )


def downgrade() -> None:
    op.drop_index("posts_owner_post_descriptor_id_idx", table_name="posts")
    op.drop_table("posts")
