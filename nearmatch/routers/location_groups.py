# 위치 그룹 API: 생성/주변 검색, GPS·QR 체크인, 체크인 이력, 그룹 내 추천
from io import BytesIO
from typing import List

import qrcode
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from nearmatch.database import get_db
from nearmatch.deps import get_geofence, get_qr_verifier, get_ranker
from nearmatch.errors import EngineError
from nearmatch.integrations.kakao_local import describe_location
from nearmatch.models.location_group import LocationGroup
from nearmatch.schemas.geofence import (
    CandidateResponse,
    CheckInRecord,
    CheckInResponse,
    GpsCheckInBody,
    LocationGroupCreate,
    LocationGroupResponse,
    QrCheckInBody,
    QrTokenResponse,
)
from nearmatch.services.compatibility import CompatibilityRanker
from nearmatch.services.geo import Coordinate, format_distance
from nearmatch.services.geofence import CheckInResult, GeoFenceVerifier, encode_qr_payload

router = APIRouter(prefix="/location-groups", tags=["Location Groups"])


def _group_to_response(group: LocationGroup, distance_m: float | None = None) -> LocationGroupResponse:
    return LocationGroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        lat=group.center_lat,
        lng=group.center_lng,
        radius_m=group.radius_m,
        is_active=group.is_active,
        distance_m=round(distance_m, 1) if distance_m is not None else None,
        distance_text=format_distance(distance_m) if distance_m is not None else None,
    )


def _check_in_to_response(result: CheckInResult) -> CheckInResponse:
    check_in = result.check_in
    return CheckInResponse(
        status=result.status.value,
        already_member=result.already_member,
        check_in_id=check_in.id,
        group_id=result.group.id,
        group_name=result.group.name,
        method=check_in.method,
        distance_m=round(result.distance_m, 1) if result.distance_m is not None else None,
        address=check_in.address,
        created_at=check_in.created_at,
    )


@router.post("", response_model=LocationGroupResponse)
def create_location_group(
    body: LocationGroupCreate,
    db: Session = Depends(get_db),
    verifier: GeoFenceVerifier = Depends(get_geofence),
) -> LocationGroupResponse:
    """위치 그룹 생성. 생성자는 ADMIN 멤버로 등록."""
    try:
        group = verifier.create_group(
            body.creator_id,
            body.name,
            Coordinate(body.lat, body.lng),
            body.radius_m,
            description=body.description,
        )
        db.commit()  # ✅ 트랜잭션 소유권: 라우터
        db.refresh(group)
        return _group_to_response(group)

    except EngineError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.detail())

    except Exception:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create location group")


@router.get("/nearby", response_model=List[LocationGroupResponse])
def get_nearby_groups(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_m: float = Query(1000.0, gt=0, le=50_000),
    verifier: GeoFenceVerifier = Depends(get_geofence),
) -> List[LocationGroupResponse]:
    """사용자 좌표 기준 반경 내 활성 그룹. 가까운 순 정렬."""
    try:
        nearby = verifier.find_nearby_groups(Coordinate(lat, lng), radius_m)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return [_group_to_response(n.group, n.distance_m) for n in nearby]


@router.post("/{group_id}/check-in/gps", response_model=CheckInResponse)
async def post_gps_check_in(
    group_id: int,
    body: GpsCheckInBody,
    db: Session = Depends(get_db),
    verifier: GeoFenceVerifier = Depends(get_geofence),
) -> CheckInResponse:
    """
    GPS 체크인. 반경 밖이면 403 + 부족 거리(shortfall_m).
    주소는 검증 성공 후 best effort로 채움 (Kakao 실패 시 "lat X, lng Y").
    """
    try:
        result = verifier.verify_gps(body.user_id, group_id, Coordinate(body.lat, body.lng), body.accuracy)
        location = await describe_location(body.lat, body.lng)
        result.check_in.address = location.address
        db.commit()  # ✅ 트랜잭션 소유권: 라우터
        return _check_in_to_response(result)

    except EngineError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.detail())

    except Exception:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to check in")


@router.get("/{group_id}/qr", response_model=QrTokenResponse)
def get_qr_token(group_id: int, verifier: GeoFenceVerifier = Depends(get_qr_verifier)) -> QrTokenResponse:
    """그룹 QR 페이로드 발급 (서명은 그룹 단위 고정, timestamp로 5분 유효)."""
    try:
        token = verifier.issue_qr_token(group_id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return QrTokenResponse(**token, qr_data=encode_qr_payload(token))


@router.get("/{group_id}/qr.png")
def get_qr_png(group_id: int, verifier: GeoFenceVerifier = Depends(get_qr_verifier)) -> Response:
    """키오스크/현장 출력용 QR 이미지."""
    try:
        token = verifier.issue_qr_token(group_id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    img = qrcode.make(encode_qr_payload(token))
    b = BytesIO()
    img.save(b, format="PNG")
    return Response(content=b.getvalue(), media_type="image/png", headers={"Cache-Control": "no-store"})


@router.post("/check-in/qr", response_model=CheckInResponse)
def post_qr_check_in(
    body: QrCheckInBody,
    db: Session = Depends(get_db),
    verifier: GeoFenceVerifier = Depends(get_qr_verifier),
) -> CheckInResponse:
    """QR 체크인. 서명 불일치 401, 5분 초과 410, 깨진 페이로드 400."""
    try:
        result = verifier.verify_qr(body.user_id, body.payload)
        db.commit()
        return _check_in_to_response(result)

    except EngineError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.detail())

    except Exception:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to check in")


@router.get("/{group_id}/check-ins", response_model=List[CheckInRecord])
def get_group_check_ins(
    group_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    verifier: GeoFenceVerifier = Depends(get_geofence),
) -> List[CheckInRecord]:
    try:
        rows = verifier.get_check_ins(group_id, page=page, limit=limit)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return [CheckInRecord.model_validate(r) for r in rows]


@router.get("/users/{user_id}/location-history", response_model=List[CheckInRecord])
def get_location_history(
    user_id: int,
    days: int = Query(7, ge=1, le=90),
    verifier: GeoFenceVerifier = Depends(get_geofence),
) -> List[CheckInRecord]:
    """최근 GPS 체크인 위치 이력 (최신순, 최대 100건)."""
    rows = verifier.get_user_location_history(user_id, days=days)
    return [CheckInRecord.model_validate(r) for r in rows]


@router.get("/{group_id}/recommendations", response_model=List[CandidateResponse])
def get_recommendations(
    group_id: int,
    user_id: int = Query(...),
    count: int = Query(10, ge=1, le=50),
    ranker: CompatibilityRanker = Depends(get_ranker),
) -> List[CandidateResponse]:
    """그룹 멤버 추천 (익명). 요청자가 그룹 멤버가 아니면 403."""
    try:
        candidates = ranker.recommend(user_id, group_id, count)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())
    return [CandidateResponse.model_validate(c) for c in candidates]
