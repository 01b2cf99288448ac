# 즉석 모임 참가자 / 특징 프로필 CRUD

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nearmatch.models.instant_meeting import (
    InstantActivityLog,
    InstantFeatureProfile,
    InstantParticipant,
)


def find_participant(db: Session, user_id: int, meeting_id: int) -> Optional[InstantParticipant]:
    return db.scalars(
        select(InstantParticipant).where(
            InstantParticipant.user_id == user_id,
            InstantParticipant.meeting_id == meeting_id,
        )
    ).first()


def upsert_participant(
    db: Session,
    user_id: int,
    meeting_id: int,
    nickname: str,
    now: datetime,
) -> InstantParticipant:
    """
    (user_id, meeting_id) 기준 참가자 upsert를 명시적 두 갈래로 처리.

    - 있으면: 닉네임 갱신, 나간 상태였으면 재활성화 (left_at 초기화)
    - 없으면: 생성. 동시 입장으로 유니크 제약 위반 시 상대가 만든 행을 재활성화

    ⚠️ commit하지 않음. 호출자가 트랜잭션을 제어.
    """
    participant = find_participant(db, user_id, meeting_id)
    if participant is None:
        try:
            with db.begin_nested():
                participant = InstantParticipant(
                    user_id=user_id,
                    meeting_id=meeting_id,
                    nickname=nickname,
                    is_active=True,
                    joined_at=now,
                )
                db.add(participant)
            return participant
        except IntegrityError:
            participant = find_participant(db, user_id, meeting_id)
            if participant is None:
                raise

    participant.nickname = nickname
    if not participant.is_active:
        participant.is_active = True
        participant.left_at = None
        participant.joined_at = now
    return participant


def replace_feature_profile(
    db: Session,
    participant_id: int,
    my_features: Dict[str, Any],
    looking_for: Dict[str, Any],
    now: datetime,
) -> InstantFeatureProfile:
    """특징 프로필 교체 (참가자와 1:1). 없으면 생성."""
    profile = db.scalars(
        select(InstantFeatureProfile).where(InstantFeatureProfile.participant_id == participant_id)
    ).first()
    if profile is None:
        profile = InstantFeatureProfile(participant_id=participant_id)
        db.add(profile)
    profile.my_features = my_features
    profile.looking_for_features = looking_for
    profile.updated_at = now
    db.flush()
    return profile


def active_profiles_in_meeting(
    db: Session,
    meeting_id: int,
    exclude_participant_id: int,
) -> List[InstantFeatureProfile]:
    """같은 모임의 다른 활성 참가자 특징 프로필."""
    q = (
        select(InstantFeatureProfile)
        .join(InstantParticipant, InstantFeatureProfile.participant_id == InstantParticipant.id)
        .where(
            InstantParticipant.meeting_id == meeting_id,
            InstantParticipant.is_active.is_(True),
            InstantParticipant.id != exclude_participant_id,
        )
        .order_by(InstantParticipant.id)
    )
    return list(db.scalars(q))


def log_activity(
    db: Session,
    user_id: int,
    meeting_id: int,
    activity_type: str,
    now: datetime,
    data: Optional[Dict[str, Any]] = None,
) -> None:
    db.add(
        InstantActivityLog(
            user_id=user_id,
            meeting_id=meeting_id,
            activity_type=activity_type,
            activity_data=data,
            created_at=now,
        )
    )
