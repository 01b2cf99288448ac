# 위치 그룹 / 체크인 / 추천 API 요청·응답 스키마

from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

CheckInMethodLiteral = Literal["GPS", "QR"]
CheckInStatusLiteral = Literal["CHECKED_IN", "ALREADY_MEMBER"]


class LocationGroupCreate(BaseModel):
    """위치 그룹 생성 요청. 좌표 유효성은 엔진에서 검증 (운영 영역 포함)."""

    creator_id: int
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    lat: float
    lng: float
    radius_m: float = Field(default=100.0, gt=0, le=50_000)


class LocationGroupResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    lat: float
    lng: float
    radius_m: float
    is_active: bool = True
    # nearby에서만 의미 있음
    distance_m: Optional[float] = None
    distance_text: Optional[str] = None


class GpsCheckInBody(BaseModel):
    user_id: int
    lat: float
    lng: float
    accuracy: Optional[float] = Field(default=None, ge=0)


class QrCheckInBody(BaseModel):
    """QR 스캔 결과. 스캐너가 준 문자열 그대로 또는 파싱된 객체."""

    user_id: int
    payload: Union[str, Dict[str, Any]]


class QrTokenResponse(BaseModel):
    type: str
    groupId: str
    timestamp: int
    signature: str
    # QR 이미지에 넣을 직렬화 문자열
    qr_data: str


class CheckInResponse(BaseModel):
    status: CheckInStatusLiteral
    already_member: bool
    check_in_id: int
    group_id: int
    group_name: str
    method: CheckInMethodLiteral
    distance_m: Optional[float] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None


class CheckInRecord(BaseModel):
    """체크인 이력 (감사/히스토리 조회)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    group_id: int
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    method: CheckInMethodLiteral
    address: Optional[str] = None
    created_at: Optional[datetime] = None


class CandidateResponse(BaseModel):
    """추천 후보. 좋아요 전까지 닉네임 마스킹 + bio 비공개."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    nickname: str
    age: Optional[int] = None
    gender: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    last_active: Optional[datetime] = None
    score: int
