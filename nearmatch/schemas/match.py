# 매칭 원장 API 요청/응답 스키마

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MatchStatusLiteral = Literal["ACTIVE", "EXPIRED", "DELETED"]


class LikeBody(BaseModel):
    from_user_id: int
    to_user_id: int
    group_id: Optional[int] = None


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user1_id: int
    user2_id: int
    group_id: Optional[int] = None
    status: MatchStatusLiteral
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LikeResponse(BaseModel):
    like_id: int
    is_match: bool
    match: Optional[MatchResponse] = None


class MutualConnectionsResponse(BaseModel):
    match_id: int
    user_ids: List[int]
    group_ids: List[int]


class ExpireBody(BaseModel):
    older_than_days: Optional[int] = Field(default=None, ge=0)  # None이면 MATCH_EXPIRY_DAYS
    require_no_messages: bool = True


class ExpireResponse(BaseModel):
    expired: int
