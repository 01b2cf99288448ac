# 즉석 모임 API 요청/응답 스키마

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FeaturesSchema(BaseModel):
    """인상착의 (JSON 키는 camelCase 그대로 저장)."""

    upperWear: Optional[str] = Field(default=None, max_length=100)
    lowerWear: Optional[str] = Field(default=None, max_length=100)
    glasses: Optional[bool] = None
    specialFeatures: Optional[str] = Field(default=None, max_length=500)


class InstantMeetingCreate(BaseModel):
    creator_id: int
    name: str = Field(..., min_length=1, max_length=100)
    duration_hours: float = Field(default=3.0, gt=0, le=24)


class InstantMeetingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    creator_id: int
    is_active: bool
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class JoinInstantBody(BaseModel):
    user_id: int
    nickname: str = Field(..., min_length=1, max_length=50)
    my_features: FeaturesSchema = Field(default_factory=FeaturesSchema)
    looking_for: FeaturesSchema = Field(default_factory=FeaturesSchema)


class JoinByCodeBody(JoinInstantBody):
    code: str = Field(..., min_length=1, max_length=10)


class UpdateFeaturesBody(BaseModel):
    my_features: FeaturesSchema
    looking_for: FeaturesSchema


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    meeting_id: int
    nickname: str
    is_active: bool
    joined_at: Optional[datetime] = None
    left_at: Optional[datetime] = None


class UpdateFeaturesResponse(BaseModel):
    participant_id: int
    new_matches: int


class AutoMatchResponse(BaseModel):
    """내 매칭 목록: 상대 닉네임 + 채팅방."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    nickname: str
    chat_room_id: str
    matched_at: Optional[datetime] = None


class ParticipantStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    matches: int
    last_attempt_at: Optional[datetime] = None
    potential_matches: int
