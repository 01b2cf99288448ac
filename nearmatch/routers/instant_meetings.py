# 즉석 모임 API: 생성/입장, 인상착의 등록, 자동 매칭 조회, 실시간 이벤트 스트림
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from nearmatch.deps import get_feature_matcher
from nearmatch.errors import EngineError
from nearmatch.realtime.sse_pubsub import stream_meeting_events
from nearmatch.schemas.instant import (
    AutoMatchResponse,
    InstantMeetingCreate,
    InstantMeetingResponse,
    JoinByCodeBody,
    JoinInstantBody,
    ParticipantResponse,
    ParticipantStatsResponse,
    UpdateFeaturesBody,
    UpdateFeaturesResponse,
)
from nearmatch.services.feature_matcher import FeatureMatcher, Features

router = APIRouter(prefix="/instant-meetings", tags=["Instant Meetings"])


def _features(body) -> tuple[Features, Features]:
    try:
        return Features.from_dict(body.my_features.model_dump()), Features.from_dict(body.looking_for.model_dump())
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())


@router.post("", response_model=InstantMeetingResponse)
def create_instant_meeting(
    body: InstantMeetingCreate,
    matcher: FeatureMatcher = Depends(get_feature_matcher),
) -> InstantMeetingResponse:
    """즉석 모임 생성. 6자리 입장 코드 발급."""
    try:
        meeting = matcher.create_meeting(body.creator_id, body.name, body.duration_hours)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return InstantMeetingResponse.model_validate(meeting)


@router.post("/join-by-code", response_model=ParticipantResponse)
def post_join_by_code(
    body: JoinByCodeBody,
    matcher: FeatureMatcher = Depends(get_feature_matcher),
) -> ParticipantResponse:
    """입장 코드로 참가. 매칭은 응답 후 백그라운드에서 평가."""
    my, want = _features(body)
    try:
        meeting = matcher.find_meeting_by_code(body.code)
        participant = matcher.join(body.user_id, meeting.id, body.nickname, my, want)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return ParticipantResponse.model_validate(participant)


@router.post("/{meeting_id}/join", response_model=ParticipantResponse)
def post_join(
    meeting_id: int,
    body: JoinInstantBody,
    matcher: FeatureMatcher = Depends(get_feature_matcher),
) -> ParticipantResponse:
    """참가(재참가 시 재활성화) + 특징 등록. 매칭은 응답 후 백그라운드에서 평가."""
    my, want = _features(body)
    try:
        participant = matcher.join(body.user_id, meeting_id, body.nickname, my, want)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return ParticipantResponse.model_validate(participant)


@router.put("/participants/{participant_id}/features", response_model=UpdateFeaturesResponse)
def put_features(
    participant_id: int,
    body: UpdateFeaturesBody,
    matcher: FeatureMatcher = Depends(get_feature_matcher),
) -> UpdateFeaturesResponse:
    """특징 수정 후 즉시 재매칭. 새로 생긴 매칭 수 반환."""
    my, want = _features(body)
    try:
        created = matcher.update_features(participant_id, my, want)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return UpdateFeaturesResponse(participant_id=participant_id, new_matches=created)


@router.post("/participants/{participant_id}/leave", response_model=ParticipantResponse)
def post_leave(
    participant_id: int,
    matcher: FeatureMatcher = Depends(get_feature_matcher),
) -> ParticipantResponse:
    try:
        participant = matcher.leave(participant_id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return ParticipantResponse.model_validate(participant)


@router.get("/participants/{participant_id}/matches", response_model=List[AutoMatchResponse])
def get_my_matches(
    participant_id: int,
    matcher: FeatureMatcher = Depends(get_feature_matcher),
) -> List[AutoMatchResponse]:
    try:
        matches = matcher.get_my_matches(participant_id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return [AutoMatchResponse.model_validate(m) for m in matches]


@router.get("/participants/{participant_id}/stats", response_model=ParticipantStatsResponse)
def get_participant_stats(
    participant_id: int,
    matcher: FeatureMatcher = Depends(get_feature_matcher),
) -> ParticipantStatsResponse:
    try:
        stats = matcher.get_participant_stats(participant_id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return ParticipantStatsResponse.model_validate(stats)


@router.get("/{meeting_id}/events/stream")
async def get_event_stream(meeting_id: int):
    """SSE: 해당 모임의 featureUpdated / newMatch 이벤트 실시간 스트림."""
    return StreamingResponse(
        stream_meeting_events(meeting_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
