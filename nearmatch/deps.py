# FastAPI 의존성: 환경 변수 기반으로 엔진 서비스 조립 (테스트에서는 dependency_overrides로 교체)

import os
from typing import Optional

from fastapi import BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from nearmatch.database import SessionLocal, get_db
from nearmatch.realtime.events import EventPublisher, RedisEventPublisher
from nearmatch.services.compatibility import CompatibilityRanker
from nearmatch.services.feature_matcher import FeatureMatcher
from nearmatch.services.geofence import GeoFenceVerifier
from nearmatch.services.match_ledger import MatchLedger

QR_SIGNING_SECRET = os.getenv("QR_SIGNING_SECRET", "")

_publisher: Optional[EventPublisher] = None


def get_publisher() -> EventPublisher:
    """프로세스당 Redis 발행자 1개 재사용."""
    global _publisher
    if _publisher is None:
        _publisher = RedisEventPublisher()
    return _publisher


def get_signing_secret() -> str:
    if not QR_SIGNING_SECRET:
        raise HTTPException(status_code=503, detail="QR_SIGNING_SECRET가 설정되지 않았습니다.")
    return QR_SIGNING_SECRET


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_geofence(db: Session = Depends(get_db)) -> GeoFenceVerifier:
    # GPS/그룹 조회용. 시크릿이 없어도 동작 (QR 호출만 실패)
    return GeoFenceVerifier(db, QR_SIGNING_SECRET or None)


def get_qr_verifier(
    db: Session = Depends(get_db),
    secret: str = Depends(get_signing_secret),
) -> GeoFenceVerifier:
    """QR 발급/검증용. 시크릿 미설정 시 503."""
    return GeoFenceVerifier(db, secret)


def get_ranker(db: Session = Depends(get_db)) -> CompatibilityRanker:
    return CompatibilityRanker(db)


def get_ledger(db: Session = Depends(get_db)) -> MatchLedger:
    return MatchLedger(db)


def get_feature_matcher(
    background_tasks: BackgroundTasks,
    session_factory: sessionmaker = Depends(get_session_factory),
    publisher: EventPublisher = Depends(get_publisher),
) -> FeatureMatcher:
    # 매칭 평가는 응답 이후 백그라운드에서 실행
    return FeatureMatcher(session_factory, publisher, spawn=background_tasks.add_task)
