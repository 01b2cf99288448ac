"""matches, user_likes, chat_messages 테이블 생성

Revision ID: 003
Revises: 002
Create Date: 2026-10-19 00:00:02.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user1_id", sa.Integer(), nullable=False),
        sa.Column("user2_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["group_id"], ["location_groups.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user1_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user2_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("user1_id < user2_id", name="ck_matches_ordered_pair"),
    )
    op.create_index(op.f("ix_matches_id"), "matches", ["id"], unique=False)
    op.create_index(op.f("ix_matches_user1_id"), "matches", ["user1_id"], unique=False)
    op.create_index(op.f("ix_matches_user2_id"), "matches", ["user2_id"], unique=False)
    op.create_index(op.f("ix_matches_group_id"), "matches", ["group_id"], unique=False)
    # 삭제되지 않은 매칭만 쌍당 1개 (삭제 후 재매칭 허용). 그룹 없음(NULL)은 0으로 비교
    op.create_index(
        "uq_matches_live_pair",
        "matches",
        ["user1_id", "user2_id", sa.text("coalesce(group_id, 0)")],
        unique=True,
        postgresql_where=sa.text("status <> 'DELETED'"),
        sqlite_where=sa.text("status <> 'DELETED'"),
    )

    op.create_table(
        "user_likes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("from_user_id", sa.Integer(), nullable=False),
        sa.Column("to_user_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("is_match", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["from_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["location_groups.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_user_like_pair_group",
        "user_likes",
        ["from_user_id", "to_user_id", sa.text("coalesce(group_id, 0)")],
        unique=True,
    )
    op.create_index(op.f("ix_user_likes_id"), "user_likes", ["id"], unique=False)
    op.create_index(op.f("ix_user_likes_from_user_id"), "user_likes", ["from_user_id"], unique=False)
    op.create_index(op.f("ix_user_likes_to_user_id"), "user_likes", ["to_user_id"], unique=False)

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["match_id"], ["matches.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_chat_messages_id"), "chat_messages", ["id"], unique=False)
    op.create_index(op.f("ix_chat_messages_match_id"), "chat_messages", ["match_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_chat_messages_match_id"), table_name="chat_messages")
    op.drop_index(op.f("ix_chat_messages_id"), table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index(op.f("ix_user_likes_to_user_id"), table_name="user_likes")
    op.drop_index(op.f("ix_user_likes_from_user_id"), table_name="user_likes")
    op.drop_index(op.f("ix_user_likes_id"), table_name="user_likes")
    op.drop_index("uq_user_like_pair_group", table_name="user_likes")
    op.drop_table("user_likes")
    op.drop_index("uq_matches_live_pair", table_name="matches")
    op.drop_index(op.f("ix_matches_group_id"), table_name="matches")
    op.drop_index(op.f("ix_matches_user2_id"), table_name="matches")
    op.drop_index(op.f("ix_matches_user1_id"), table_name="matches")
    op.drop_index(op.f("ix_matches_id"), table_name="matches")
    op.drop_table("matches")
