# CheckIn 모델: 입장 검증 감사 로그 (append-only, 수정 없음)

from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.sql import func

from nearmatch.models.base import Base


class CheckInMethod(str, PyEnum):
    GPS = "GPS"
    QR = "QR"


class CheckIn(Base):
    """체크인 1건 = 성공한 입장 시도 1건. QR 체크인은 좌표가 (0, 0)."""

    __tablename__ = "check_ins"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("location_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)  # 단말이 보고한 GPS 정확도(m)
    method = Column(String(8), nullable=False)
    is_valid = Column(Boolean, nullable=False, default=True)
    address = Column(String(300), nullable=True)  # 역지오코딩 결과 (best effort)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_check_ins_user_created", "user_id", "created_at"),)
