"""initial schema

Revision ID: 5c1e2a9d7b40
Revises:
Create Date: 2026-10-17 09:12:44.318201

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from ephemera.models.interaction import FLAG_REASONS, REACTION_TYPES

# revision identifiers, used by Alembic.
revision: str = "5c1e2a9d7b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


def upgrade() -> None:
    """Create devices, spaces, posts and their dependents."""
    op.create_table(
        "device",
        sa.Column("id", ID, primary_key=True),
        sa.Column("fingerprint_hash", sa.String(length=64), nullable=False),
        sa.Column("reputation_score", sa.Integer(), nullable=False),
        sa.Column("total_posts", sa.Integer(), nullable=False),
        sa.Column("total_flags_received", sa.Integer(), nullable=False),
        sa.Column("total_flags_given", sa.Integer(), nullable=False),
        sa.Column("is_banned", sa.Boolean(), nullable=False),
        sa.Column("ban_reason", sa.Text(), nullable=True),
        sa.Column("ban_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_post_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("posts_in_current_window", sa.Integer(), nullable=False),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "reputation_score >= 0 AND reputation_score <= 100",
            name="ck_device_reputation_range",
        ),
        sa.UniqueConstraint("fingerprint_hash"),
    )

    op.create_table(
        "space",
        sa.Column("id", ID, primary_key=True),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ttl_hours", sa.Integer(), nullable=False),
        sa.Column("flag_threshold", sa.Integer(), nullable=False),
        sa.Column("auto_mod_enabled", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_private", sa.Boolean(), nullable=False),
        sa.Column("tier", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "post",
        sa.Column("id", ID, primary_key=True, autoincrement=True),
        sa.Column("space_id", ID, sa.ForeignKey("space.id", ondelete="CASCADE"), nullable=False),
        sa.Column("device_id", ID, sa.ForeignKey("device.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_visible", sa.Boolean(), nullable=False),
        sa.Column("is_grayed", sa.Boolean(), nullable=False),
        sa.Column("mod_action", sa.Text(), nullable=True),
        sa.Column("reaction_count", sa.Integer(), nullable=False),
        sa.Column("reply_count", sa.Integer(), nullable=False),
        sa.Column("flag_count", sa.Integer(), nullable=False),
        sa.Column("session_token", sa.Text(), nullable=True),
    )
    op.create_index("ix_post_space_expires_at", "post", ["space_id", "expires_at"])
    op.create_index("ix_post_space_created_at", "post", ["space_id", "created_at"])
    op.create_index("ix_post_expires_at", "post", ["expires_at"])

    op.create_table(
        "reply",
        sa.Column("id", ID, primary_key=True, autoincrement=True),
        sa.Column("post_id", ID, sa.ForeignKey("post.id", ondelete="CASCADE"), nullable=False),
        sa.Column("device_id", ID, sa.ForeignKey("device.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_visible", sa.Boolean(), nullable=False),
        sa.Column("session_token", sa.Text(), nullable=True),
    )
    op.create_index("ix_reply_post_created_at", "reply", ["post_id", "created_at"])

    op.create_table(
        "reaction",
        sa.Column("id", ID, primary_key=True, autoincrement=True),
        sa.Column("post_id", ID, sa.ForeignKey("post.id", ondelete="CASCADE"), nullable=False),
        sa.Column("device_id", ID, sa.ForeignKey("device.id"), nullable=False),
        sa.Column("reaction_type", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("post_id", "device_id", name="uq_reaction_post_device"),
        sa.CheckConstraint(_in_list("reaction_type", REACTION_TYPES), name="ck_reaction_type"),
    )
    op.create_index("ix_reaction_post_type", "reaction", ["post_id", "reaction_type"])

    op.create_table(
        "flag",
        sa.Column("id", ID, primary_key=True, autoincrement=True),
        sa.Column("post_id", ID, sa.ForeignKey("post.id", ondelete="CASCADE"), nullable=False),
        sa.Column("device_id", ID, sa.ForeignKey("device.id"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("post_id", "device_id", name="uq_flag_post_device"),
        sa.CheckConstraint(_in_list("reason", FLAG_REASONS), name="ck_flag_reason"),
    )


def downgrade() -> None:
    """Drop every table created by this revision."""
    op.drop_table("flag")
    op.drop_index("ix_reaction_post_type", table_name="reaction")
    op.drop_table("reaction")
    op.drop_index("ix_reply_post_created_at", table_name="reply")
    op.drop_table("reply")
    op.drop_index("ix_post_expires_at", table_name="post")
    op.drop_index("ix_post_space_created_at", table_name="post")
    op.drop_index("ix_post_space_expires_at", table_name="post")
    op.drop_table("post")
    op.drop_table("space")
    op.drop_table("device")
