# LocationGroup 모델: 위치 기반 그룹 (지오펜스 = 중심 좌표 + 반경)

from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.sql import func

from nearmatch.models.base import Base


class MemberRole(str, PyEnum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class MemberStatus(str, PyEnum):
    ACTIVE = "ACTIVE"
    LEFT = "LEFT"


class LocationGroup(Base):
    """
    위치 기반 그룹. 중심/반경은 소유자만 수정.
    qr_signing_subject: QR 서명 대상 문자열 (기본값은 그룹 id). 바꾸면 기존 QR 전부 무효.
    """

    __tablename__ = "location_groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    center_lat = Column(Float, nullable=False)
    center_lng = Column(Float, nullable=False)
    radius_m = Column(Float, nullable=False, default=1000.0)
    qr_signing_subject = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def signing_subject(self) -> str:
        return self.qr_signing_subject or str(self.id)


class GroupMember(Base):
    """그룹 멤버십. (group_id, user_id) 당 1행, 탈퇴 후 재가입은 재활성화."""

    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("location_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default=MemberRole.MEMBER.value)
    status = Column(String(20), nullable=False, default=MemberStatus.ACTIVE.value)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member_group_user"),)
