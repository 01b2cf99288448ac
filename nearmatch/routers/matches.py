# 매칭 API: 좋아요(상호 좋아요 시 매칭), 매칭 목록, 공통 연결, 삭제, 만료 처리
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from nearmatch.database import get_db
from nearmatch.deps import get_ledger, get_publisher
from nearmatch.errors import EngineError
from nearmatch.models.match import MatchStatus
from nearmatch.realtime.events import EVENT_MATCH_CREATED, EventPublisher, user_channel
from nearmatch.schemas.match import (
    ExpireBody,
    ExpireResponse,
    LikeBody,
    LikeResponse,
    MatchResponse,
    MatchStatusLiteral,
    MutualConnectionsResponse,
)
from nearmatch.services.match_ledger import MATCH_EXPIRY_DAYS, MatchLedger

router = APIRouter(prefix="/matches", tags=["Matches"])


@router.post("/likes", response_model=LikeResponse)
def post_like(
    body: LikeBody,
    db: Session = Depends(get_db),
    ledger: MatchLedger = Depends(get_ledger),
    publisher: EventPublisher = Depends(get_publisher),
) -> LikeResponse:
    """좋아요. 상대도 이미 좋아요했다면 매칭 생성 후 양쪽에 matchCreated 발행."""
    try:
        result = ledger.record_like(body.from_user_id, body.to_user_id, body.group_id)
        db.commit()  # ✅ 트랜잭션 소유권: 라우터

    except EngineError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.detail())

    except Exception:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to record like")

    match = MatchResponse.model_validate(result.match) if result.match is not None else None
    if match is not None and result.new_match:
        # commit 후 발행
        payload = {"matchId": match.id, "groupId": match.group_id}
        for uid in (match.user1_id, match.user2_id):
            publisher.publish(user_channel(uid), EVENT_MATCH_CREATED, payload)
    return LikeResponse(like_id=result.like.id, is_match=result.is_match, match=match)


@router.get("", response_model=List[MatchResponse])
def get_matches(
    user_id: int = Query(...),
    status: Optional[MatchStatusLiteral] = Query(MatchStatus.ACTIVE.value),
    ledger: MatchLedger = Depends(get_ledger),
) -> List[MatchResponse]:
    matches = ledger.get_user_matches(user_id, MatchStatus(status) if status else None)
    return [MatchResponse.model_validate(m) for m in matches]


@router.get("/{match_id}/mutual-connections", response_model=MutualConnectionsResponse)
def get_mutual_connections(
    match_id: int,
    user_id: int = Query(...),
    ledger: MatchLedger = Depends(get_ledger),
) -> MutualConnectionsResponse:
    """둘 다 매칭된 사용자 + 둘 다 속한 그룹. 매칭 당사자만 조회 가능."""
    try:
        mutual = ledger.get_mutual_connections(match_id, user_id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return MutualConnectionsResponse(match_id=match_id, user_ids=mutual.user_ids, group_ids=mutual.group_ids)


@router.delete("/{match_id}", response_model=MatchResponse)
def delete_match(
    match_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    ledger: MatchLedger = Depends(get_ledger),
) -> MatchResponse:
    """매칭 삭제 (되돌릴 수 없음). 이미 삭제된 매칭이면 409."""
    try:
        match = ledger.delete_match(match_id, user_id)
        db.commit()
        return MatchResponse.model_validate(match)

    except EngineError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.detail())

    except Exception:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to delete match")


@router.post("/expire", response_model=ExpireResponse)
def post_expire(
    body: ExpireBody,
    db: Session = Depends(get_db),
    ledger: MatchLedger = Depends(get_ledger),
) -> ExpireResponse:
    """오래된 ACTIVE 매칭 일괄 만료 (스케줄러/운영 도구에서 호출)."""
    days = body.older_than_days if body.older_than_days is not None else MATCH_EXPIRY_DAYS
    try:
        expired = ledger.expire_inactive_matches(days, body.require_no_messages)
        db.commit()
    except Exception:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to expire matches")
    return ExpireResponse(expired=expired)
