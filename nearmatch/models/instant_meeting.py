# 즉석 모임 모델: 모임 / 참가자 / 특징 프로필 / 자동 매칭 / 매칭 시도 / 활동 로그

from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from nearmatch.models.base import Base


class ActivityType(str, PyEnum):
    JOIN = "JOIN"
    LEAVE = "LEAVE"
    FEATURE_UPDATED = "FEATURE_UPDATED"
    MATCH_CREATED = "MATCH_CREATED"


class InstantMeeting(Base):
    """즉석 모임. code로 입장, expires_at 이후에는 참가 불가."""

    __tablename__ = "instant_meetings"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(12), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class InstantParticipant(Base):
    """참가자. (user_id, meeting_id) 당 1행, 재입장은 재활성화."""

    __tablename__ = "instant_participants"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    meeting_id = Column(Integer, ForeignKey("instant_meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    nickname = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())
    left_at = Column(DateTime(timezone=True), nullable=True)

    features = relationship("InstantFeatureProfile", back_populates="participant", uselist=False)

    __table_args__ = (UniqueConstraint("user_id", "meeting_id", name="uq_instant_participant_user_meeting"),)


class InstantFeatureProfile(Base):
    """참가자 1:1 특징 프로필. 교체될 때마다 매칭 재평가."""

    __tablename__ = "instant_feature_profiles"

    id = Column(Integer, primary_key=True, index=True)
    participant_id = Column(
        Integer,
        ForeignKey("instant_participants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    my_features = Column(JSON, nullable=False, default=dict)
    looking_for_features = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    participant = relationship("InstantParticipant", back_populates="features")


class InstantAutoMatch(Base):
    """
    자동 매칭. 순서 없는 쌍이므로 participant1_id < participant2_id 로 정규화해서 저장.
    유니크 제약이 동시 evaluate 경쟁에서 중복 생성을 막음.
    """

    __tablename__ = "instant_auto_matches"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("instant_meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    participant1_id = Column(Integer, ForeignKey("instant_participants.id", ondelete="CASCADE"), nullable=False)
    participant2_id = Column(Integer, ForeignKey("instant_participants.id", ondelete="CASCADE"), nullable=False)
    chat_room_id = Column(String(64), nullable=False)
    matched_at = Column(DateTime(timezone=True), server_default=func.now())

    participant1 = relationship("InstantParticipant", foreign_keys=[participant1_id])
    participant2 = relationship("InstantParticipant", foreign_keys=[participant2_id])

    __table_args__ = (
        UniqueConstraint("meeting_id", "participant1_id", "participant2_id", name="uq_instant_auto_match_pair"),
        CheckConstraint("participant1_id < participant2_id", name="ck_instant_auto_match_ordered"),
    )


class InstantMatchAttempt(Base):
    """evaluate 1회 = 1행 (append-only 텔레메트리)."""

    __tablename__ = "instant_match_attempts"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("instant_meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("instant_participants.id", ondelete="CASCADE"), nullable=False, index=True)
    potential_matches = Column(Integer, nullable=False, default=0)
    successful_matches = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class InstantActivityLog(Base):
    __tablename__ = "instant_activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    meeting_id = Column(Integer, ForeignKey("instant_meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_type = Column(String(30), nullable=False)
    activity_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
