# Match 모델: 일반 매칭 원장 + 좋아요(상호작용 제외 목록) + 채팅 메시지(존재 여부만 사용)

from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.sql import func

from nearmatch.models.base import Base


class MatchStatus(str, PyEnum):
    """매칭 상태. ACTIVE → EXPIRED / DELETED 로만 진행 (되살리기 없음)."""

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    DELETED = "DELETED"


class Match(Base):
    """매칭. user1_id < user2_id 로 정규화, 같은 컨텍스트(group)에서 삭제되지 않은 매칭은 쌍당 1개."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, index=True)
    user1_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user2_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("location_groups.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=MatchStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (CheckConstraint("user1_id < user2_id", name="ck_matches_ordered_pair"),)


class UserLike(Base):
    """좋아요. 추천에서 이미 좋아요한 사용자를 제외하는 데 사용."""

    __tablename__ = "user_likes"

    id = Column(Integer, primary_key=True, index=True)
    from_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    to_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("location_groups.id", ondelete="SET NULL"), nullable=True)
    is_match = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# 그룹 없는 컨텍스트(NULL)도 같은 값으로 비교되도록 coalesce(group_id, 0)
# (그룹 id는 1부터 시작)
Index(
    "uq_matches_live_pair",
    Match.user1_id,
    Match.user2_id,
    func.coalesce(Match.group_id, 0),
    unique=True,
    postgresql_where=text("status <> 'DELETED'"),
    sqlite_where=text("status <> 'DELETED'"),
)
Index(
    "uq_user_like_pair_group",
    UserLike.from_user_id,
    UserLike.to_user_id,
    func.coalesce(UserLike.group_id, 0),
    unique=True,
)


class ChatMessage(Base):
    """채팅 전송은 외부 협력자 담당. 여기서는 만료 규칙(메시지 없음) 판단용."""

    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
