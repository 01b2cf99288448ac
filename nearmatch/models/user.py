# User 모델: 사용자 디렉터리 (추천/매칭에서 읽기 전용으로 사용)

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, text
from sqlalchemy.sql import func

from nearmatch.models.base import Base

# 탈퇴 처리된 계정의 닉네임 (추천 대상에서 제외)
DELETED_USER_NICKNAME = "deleted_user"


class User(Base):
    """사용자 테이블. 나이/성별이 모두 있어야 추천 후보가 됨."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    nickname = Column(String(100), nullable=False)
    age = Column(Integer, nullable=True)
    gender = Column(String(20), nullable=True)
    profile_image = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    last_active = Column(DateTime(timezone=True), server_default=func.now())  # 최근 활동 시각 (추천 점수 recency 항목)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
