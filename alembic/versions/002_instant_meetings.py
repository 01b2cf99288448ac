"""즉석 모임 테이블 (모임/참가자/특징 프로필/자동 매칭/매칭 시도/활동 로그)

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 00:00:01.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "instant_meetings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=12), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["creator_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_instant_meetings_id"), "instant_meetings", ["id"], unique=False)
    op.create_index(op.f("ix_instant_meetings_code"), "instant_meetings", ["code"], unique=True)

    op.create_table(
        "instant_participants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("meeting_id", sa.Integer(), nullable=False),
        sa.Column("nickname", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["meeting_id"], ["instant_meetings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "meeting_id", name="uq_instant_participant_user_meeting"),
    )
    op.create_index(op.f("ix_instant_participants_id"), "instant_participants", ["id"], unique=False)
    op.create_index(op.f("ix_instant_participants_meeting_id"), "instant_participants", ["meeting_id"], unique=False)
    op.create_index(op.f("ix_instant_participants_user_id"), "instant_participants", ["user_id"], unique=False)

    op.create_table(
        "instant_feature_profiles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("my_features", sa.JSON(), nullable=False),
        sa.Column("looking_for_features", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["participant_id"], ["instant_participants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("participant_id"),
    )
    op.create_index(op.f("ix_instant_feature_profiles_id"), "instant_feature_profiles", ["id"], unique=False)

    # 순서 없는 쌍: participant1_id < participant2_id 로 저장 → 유니크 제약으로 동시 생성 차단
    op.create_table(
        "instant_auto_matches",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meeting_id", sa.Integer(), nullable=False),
        sa.Column("participant1_id", sa.Integer(), nullable=False),
        sa.Column("participant2_id", sa.Integer(), nullable=False),
        sa.Column("chat_room_id", sa.String(length=64), nullable=False),
        sa.Column("matched_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["meeting_id"], ["instant_meetings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["participant1_id"], ["instant_participants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["participant2_id"], ["instant_participants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("meeting_id", "participant1_id", "participant2_id", name="uq_instant_auto_match_pair"),
        sa.CheckConstraint("participant1_id < participant2_id", name="ck_instant_auto_match_ordered"),
    )
    op.create_index(op.f("ix_instant_auto_matches_id"), "instant_auto_matches", ["id"], unique=False)
    op.create_index(op.f("ix_instant_auto_matches_meeting_id"), "instant_auto_matches", ["meeting_id"], unique=False)

    op.create_table(
        "instant_match_attempts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meeting_id", sa.Integer(), nullable=False),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("potential_matches", sa.Integer(), nullable=False),
        sa.Column("successful_matches", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["meeting_id"], ["instant_meetings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["participant_id"], ["instant_participants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_instant_match_attempts_id"), "instant_match_attempts", ["id"], unique=False)
    op.create_index(op.f("ix_instant_match_attempts_meeting_id"), "instant_match_attempts", ["meeting_id"], unique=False)
    op.create_index(
        op.f("ix_instant_match_attempts_participant_id"), "instant_match_attempts", ["participant_id"], unique=False
    )

    op.create_table(
        "instant_activity_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("meeting_id", sa.Integer(), nullable=False),
        sa.Column("activity_type", sa.String(length=30), nullable=False),
        sa.Column("activity_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["meeting_id"], ["instant_meetings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_instant_activity_logs_id"), "instant_activity_logs", ["id"], unique=False)
    op.create_index(op.f("ix_instant_activity_logs_meeting_id"), "instant_activity_logs", ["meeting_id"], unique=False)
    op.create_index(op.f("ix_instant_activity_logs_user_id"), "instant_activity_logs", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_table("instant_activity_logs")
    op.drop_table("instant_match_attempts")
    op.drop_table("instant_auto_matches")
    op.drop_table("instant_feature_profiles")
    op.drop_table("instant_participants")
    op.drop_index(op.f("ix_instant_meetings_code"), table_name="instant_meetings")
    op.drop_index(op.f("ix_instant_meetings_id"), table_name="instant_meetings")
    op.drop_table("instant_meetings")
