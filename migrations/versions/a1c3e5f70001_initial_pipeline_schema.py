"""initial pipeline schema

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-18 09:12:44.512031

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1c3e5f70001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
    ]


def upgrade() -> None:
    """Create the post, queue and metadata tables."""
    op.create_table(
        "post",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("conversation_id", sa.Text(), nullable=False),
        sa.Column("parent_id", sa.Text(), nullable=True),
        sa.Column("author_username", sa.Text(), nullable=False),
        sa.Column("author_display_name", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("posted_at", sa.BigInteger(), nullable=False),
        sa.Column("is_trusted", sa.Boolean(), nullable=False),
        sa.Column("indexed_at", sa.BigInteger(), nullable=False),
        sa.Column("processed_at", sa.BigInteger(), nullable=True),
        sa.ForeignKeyConstraint(["parent_id"], ["post.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("conversation_id", "parent_id", "author_username", "is_trusted", "processed_at"):
        op.create_index(f"ix_post_{column}", "post", [column])

    op.create_table(
        "knowledge_base",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("post_id", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["post_id"], ["post.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("post_id"),
    )

    op.create_table(
        "eval_queue",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("post_id", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("decision", sa.Text(), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("evaluated_at", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'evaluating', 'done')", name="ck_eval_queue_status"
        ),
        sa.CheckConstraint(
            "decision IS NULL OR decision IN ('RESPOND', 'IGNORE', 'STOP')",
            name="ck_eval_queue_decision",
        ),
        sa.ForeignKeyConstraint(["post_id"], ["post.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("post_id"),
    )
    op.create_index("ix_eval_queue_status", "eval_queue", ["status"])

    op.create_table(
        "reply_queue",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("post_id", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("reply_content", sa.Text(), nullable=True),
        sa.Column("generated_at", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'generating', 'done')", name="ck_reply_queue_status"
        ),
        sa.ForeignKeyConstraint(["post_id"], ["post.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("post_id"),
    )
    op.create_index("ix_reply_queue_status", "reply_queue", ["status"])

    op.create_table(
        "pub_queue",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("source_post_id", sa.Text(), nullable=False),
        sa.Column("reply_content", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("reply_post_id", sa.Text(), nullable=True),
        sa.Column("content_hash", sa.Text(), nullable=True),
        sa.Column("tx_hash", sa.Text(), nullable=True),
        sa.Column("tx_sent_height", sa.BigInteger(), nullable=True),
        sa.Column("tx_retry_count", sa.Integer(), nullable=False),
        sa.Column("tx_confirmations", sa.Integer(), nullable=False),
        sa.Column("seal_post_id", sa.Text(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("published_at", sa.BigInteger(), nullable=True),
        sa.Column("finalized_at", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'published', 'tx_submitted', 'confirmed', 'final', 'failed')",
            name="ck_pub_queue_status",
        ),
        sa.CheckConstraint(
            "status = 'failed'"
            " OR (status = 'pending' AND reply_post_id IS NULL AND content_hash IS NULL)"
            " OR (status <> 'pending' AND reply_post_id IS NOT NULL"
            " AND content_hash IS NOT NULL)",
            name="ck_pub_queue_published_fields",
        ),
        sa.CheckConstraint(
            "status = 'failed'"
            " OR (status IN ('pending', 'published') AND tx_hash IS NULL)"
            " OR (status IN ('tx_submitted', 'confirmed', 'final') AND tx_hash IS NOT NULL)",
            name="ck_pub_queue_tx_fields",
        ),
        sa.ForeignKeyConstraint(["source_post_id"], ["post.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("source_post_id", "status", "reply_post_id", "tx_hash", "seal_post_id"):
        op.create_index(f"ix_pub_queue_{column}", "pub_queue", [column])

    op.create_table(
        "verification_record",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("reply_post_id", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.Text(), nullable=False),
        sa.Column("tx_hash", sa.Text(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_verification_record_reply_post_id", "verification_record", ["reply_post_id"]
    )
    op.create_index("ix_verification_record_tx_hash", "verification_record", ["tx_hash"])

    op.create_table(
        "metadata_update",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("contract_address", sa.Text(), nullable=True),
        sa.Column("iteration_number", sa.Integer(), nullable=True),
        sa.Column("project_address", sa.Text(), nullable=True),
        sa.Column("old_cid", sa.Text(), nullable=True),
        sa.Column("new_cid", sa.Text(), nullable=False),
        sa.Column("tx_hash", sa.Text(), nullable=False),
        sa.Column("tx_sent_height", sa.BigInteger(), nullable=True),
        sa.Column("confirmations", sa.Integer(), nullable=False),
        sa.Column("confirmed", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tx_hash"),
    )
    for column in ("chain_id", "new_cid", "confirmed"):
        op.create_index(f"ix_metadata_update_{column}", "metadata_update", [column])

    op.create_table(
        "unpin_queue",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("cid", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("cid"),
    )

    op.create_table(
        "ipfs_cache",
        sa.Column("cid", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_type", sa.Text(), nullable=False),
        sa.Column("fetched_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("cid"),
    )


def downgrade() -> None:
    """Drop every pipeline table."""
    for table in (
        "ipfs_cache",
        "unpin_queue",
        "metadata_update",
        "verification_record",
        "pub_queue",
        "reply_queue",
        "eval_queue",
        "knowledge_base",
        "post",
    ):
        op.drop_table(table)
