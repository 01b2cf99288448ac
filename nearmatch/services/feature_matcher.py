# 즉석 모임 블라인드 매칭: "내 특징" vs "찾는 특징" 양방향 비교로 자동 매칭
#
# 참가자 상태: Joined → FeaturesSubmitted → (매칭 없음 | AutoMatched) → Left
# 새 참가자 입장/특징 변경마다 FeaturesSubmitted → AutoMatched 가 반복될 수 있음.

import logging
import math
import re
import secrets
import string
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from nearmatch.crud.participant_crud import (
    active_profiles_in_meeting,
    log_activity,
    replace_feature_profile,
    upsert_participant,
)
from nearmatch.errors import Expired, NotFound, ValidationError
from nearmatch.models.base import as_utc, utcnow
from nearmatch.models.instant_meeting import (
    ActivityType,
    InstantAutoMatch,
    InstantFeatureProfile,
    InstantMatchAttempt,
    InstantMeeting,
    InstantParticipant,
)
from nearmatch.realtime.events import (
    EVENT_FEATURE_UPDATED,
    EVENT_NEW_MATCH,
    EventPublisher,
    meeting_channel,
)

logger = logging.getLogger(__name__)

# specialFeatures 키워드 중 이 비율(올림) 이상이 상대 키워드와 겹쳐야 만족
KEYWORD_MATCH_RATIO = 0.5
_KEYWORD_SPLIT = re.compile(r"[\W_]+")

MEETING_CODE_LENGTH = 6
MEETING_CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_MEETING_HOURS = 3


@dataclass(frozen=True)
class Features:
    """인상착의. 비어 있는 필드는 "찾는 특징"에서 와일드카드."""

    upper_wear: Optional[str] = None
    lower_wear: Optional[str] = None
    glasses: Optional[bool] = None  # None = 상관없음
    special_features: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Features":
        data = data or {}
        glasses = data.get("glasses")
        if glasses is not None and not isinstance(glasses, bool):
            raise ValidationError("glasses must be true, false or null")
        return cls(
            upper_wear=data.get("upperWear") or None,
            lower_wear=data.get("lowerWear") or None,
            glasses=glasses,
            special_features=data.get("specialFeatures") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upperWear": self.upper_wear,
            "lowerWear": self.lower_wear,
            "glasses": self.glasses,
            "specialFeatures": self.special_features,
        }


def extract_keywords(text: Optional[str]) -> List[str]:
    """소문자화 후 공백/구두점으로 분리, 1글자 이하 토큰 제거."""
    if not text:
        return []
    return [t for t in _KEYWORD_SPLIT.split(text.lower()) if len(t) > 1]


def satisfies(want: Features, have: Features) -> bool:
    """want(찾는 특징)를 have(상대의 실제 특징)가 만족하는지."""
    if want.upper_wear and want.upper_wear != have.upper_wear:
        return False
    if want.lower_wear and want.lower_wear != have.lower_wear:
        return False
    if want.glasses is not None and want.glasses != have.glasses:
        return False

    wanted = extract_keywords(want.special_features)
    if wanted:
        present = extract_keywords(have.special_features)
        hits = sum(1 for w in wanted if any(w in p or p in w for p in present))
        if hits < math.ceil(len(wanted) * KEYWORD_MATCH_RATIO):
            return False
    return True


def mutually_satisfied(
    my: Features,
    my_want: Features,
    other: Features,
    other_want: Features,
) -> bool:
    return satisfies(my_want, other) and satisfies(other_want, my)


def _spawn_thread(fn: Callable[..., Any], *args: Any) -> None:
    threading.Thread(target=fn, args=args, daemon=True).start()


@dataclass
class MatchSummary:
    id: int
    nickname: str
    chat_room_id: str
    matched_at: Optional[datetime]


@dataclass
class ParticipantStats:
    matches: int
    last_attempt_at: Optional[datetime]
    potential_matches: int


class FeatureMatcher:
    """
    특징 기반 자동 매칭 엔진.

    evaluate는 join/update_features에서 트리거되며 같은 모임의 서로 다른 참가자에 대해
    동시에 실행될 수 있음. 쌍 정규화(participant1_id < participant2_id) + 유니크 제약 +
    SAVEPOINT 단위 insert로 "확인 후 생성"을 원자적으로 처리.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        publisher: EventPublisher,
        spawn: Optional[Callable[..., Any]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._publisher = publisher
        self._spawn = spawn or _spawn_thread
        self._clock = clock

    # --------------------------------------------------------------- meetings

    def create_meeting(self, creator_id: int, name: str, duration_hours: float = DEFAULT_MEETING_HOURS) -> InstantMeeting:
        if duration_hours <= 0:
            raise ValidationError("duration_hours must be positive")
        now = self._clock()
        with self._session_factory() as db:
            for _ in range(5):
                meeting = InstantMeeting(
                    code=self._generate_code(),
                    name=name,
                    creator_id=creator_id,
                    is_active=True,
                    expires_at=now + timedelta(hours=duration_hours),
                    created_at=now,
                )
                try:
                    with db.begin_nested():
                        db.add(meeting)
                except IntegrityError:
                    continue  # 코드 충돌 → 재발급
                db.commit()
                db.refresh(meeting)
                return meeting
        raise RuntimeError("Could not allocate a unique meeting code")

    def find_meeting_by_code(self, code: str) -> InstantMeeting:
        with self._session_factory() as db:
            meeting = db.scalars(select(InstantMeeting).where(InstantMeeting.code == code.upper())).first()
            if meeting is None:
                raise NotFound("Instant meeting not found")
            return meeting

    @staticmethod
    def _generate_code() -> str:
        return "".join(secrets.choice(MEETING_CODE_ALPHABET) for _ in range(MEETING_CODE_LENGTH))

    def _get_joinable_meeting(self, db: Session, meeting_id: int) -> InstantMeeting:
        meeting = db.get(InstantMeeting, meeting_id)
        if meeting is None or not meeting.is_active:
            raise NotFound("Instant meeting not found")
        if meeting.expires_at is not None and as_utc(meeting.expires_at) < self._clock():
            raise Expired("Instant meeting has expired")
        return meeting

    # ----------------------------------------------------------- participants

    def join(
        self,
        user_id: int,
        meeting_id: int,
        nickname: str,
        my_features: Features,
        looking_for: Features,
    ) -> InstantParticipant:
        """참가(또는 재참가) + 특징 저장 후 매칭은 비동기로 트리거하고 바로 반환."""
        now = self._clock()
        with self._session_factory() as db:
            self._get_joinable_meeting(db, meeting_id)
            participant = upsert_participant(db, user_id, meeting_id, nickname, now)
            db.flush()
            replace_feature_profile(db, participant.id, my_features.to_dict(), looking_for.to_dict(), now)
            log_activity(db, user_id, meeting_id, ActivityType.JOIN.value, now, {"nickname": nickname, "hasFeatures": True})
            db.commit()
            db.refresh(participant)

        logger.info("Participant %s joined meeting %s", participant.id, meeting_id)
        self._spawn(self._evaluate_in_background, participant.id)
        return participant

    def update_features(self, participant_id: int, my_features: Features, looking_for: Features) -> int:
        """특징 교체 후 동기 재매칭. 이번 호출로 새로 생긴 매칭 수 반환."""
        now = self._clock()
        with self._session_factory() as db:
            participant = db.get(InstantParticipant, participant_id)
            if participant is None or not participant.is_active:
                raise NotFound("Participant not found")
            # 만료된 모임에서는 특징 수정/재매칭 불가 (join과 동일 규칙)
            meeting_id = self._get_joinable_meeting(db, participant.meeting_id).id
            replace_feature_profile(db, participant_id, my_features.to_dict(), looking_for.to_dict(), now)
            log_activity(db, participant.user_id, meeting_id, ActivityType.FEATURE_UPDATED.value, now)
            db.commit()

        match_count = self.evaluate(participant_id)
        self._publisher.publish(
            meeting_channel(meeting_id),
            EVENT_FEATURE_UPDATED,
            {"meetingId": meeting_id, "participantId": participant_id},
        )
        return match_count

    def leave(self, participant_id: int) -> InstantParticipant:
        now = self._clock()
        with self._session_factory() as db:
            participant = db.get(InstantParticipant, participant_id)
            if participant is None:
                raise NotFound("Participant not found")
            if participant.is_active:
                participant.is_active = False
                participant.left_at = now
                log_activity(db, participant.user_id, participant.meeting_id, ActivityType.LEAVE.value, now)
                db.commit()
                db.refresh(participant)
            return participant

    # --------------------------------------------------------------- matching

    def _evaluate_in_background(self, participant_id: int) -> None:
        # 호출자가 기다리지 않으므로 여기서 실패를 기록
        try:
            self.evaluate(participant_id)
        except Exception:
            logger.exception("Background matching failed for participant %s", participant_id)

    def evaluate(self, participant_id: int) -> int:
        """참가자 1명 기준 양방향 매칭 평가. 새로 만든 AutoMatch 수 반환."""
        with self._session_factory() as db:
            created = self._evaluate(db, participant_id)
            if created is None:
                return 0
            db.commit()
            events = [self._new_match_payload(m) for m in created]

        for meeting_id, payload in events:
            self._publisher.publish(meeting_channel(meeting_id), EVENT_NEW_MATCH, payload)
        if events:
            logger.info("Participant %s got %d new match(es)", participant_id, len(events))
        return len(events)

    def _evaluate(self, db: Session, participant_id: int) -> Optional[List[InstantAutoMatch]]:
        me = db.scalars(
            select(InstantFeatureProfile).where(InstantFeatureProfile.participant_id == participant_id)
        ).first()
        if me is None or not me.participant.is_active:
            return None

        meeting_id = me.participant.meeting_id
        my = Features.from_dict(me.my_features)
        my_want = Features.from_dict(me.looking_for_features)
        candidates = active_profiles_in_meeting(db, meeting_id, participant_id)

        created: List[InstantAutoMatch] = []
        for other in candidates:
            other_my = Features.from_dict(other.my_features)
            other_want = Features.from_dict(other.looking_for_features)
            if not mutually_satisfied(my, my_want, other_my, other_want):
                continue
            if self._find_pair(db, meeting_id, participant_id, other.participant_id) is not None:
                continue
            match = self._create_pair(db, meeting_id, participant_id, other.participant_id)
            if match is not None:
                created.append(match)

        now = self._clock()
        db.add(
            InstantMatchAttempt(
                meeting_id=meeting_id,
                participant_id=participant_id,
                potential_matches=len(candidates),
                successful_matches=len(created),
                created_at=now,
            )
        )
        for match in created:
            for p in (match.participant1, match.participant2):
                log_activity(db, p.user_id, meeting_id, ActivityType.MATCH_CREATED.value, now, {"matchId": match.id})
        return created

    @staticmethod
    def _find_pair(db: Session, meeting_id: int, a: int, b: int) -> Optional[InstantAutoMatch]:
        return db.scalars(
            select(InstantAutoMatch).where(
                InstantAutoMatch.meeting_id == meeting_id,
                or_(
                    (InstantAutoMatch.participant1_id == a) & (InstantAutoMatch.participant2_id == b),
                    (InstantAutoMatch.participant1_id == b) & (InstantAutoMatch.participant2_id == a),
                ),
            )
        ).first()

    def _create_pair(self, db: Session, meeting_id: int, a: int, b: int) -> Optional[InstantAutoMatch]:
        low, high = sorted((a, b))
        match = InstantAutoMatch(
            meeting_id=meeting_id,
            participant1_id=low,
            participant2_id=high,
            chat_room_id=uuid.uuid4().hex,
            matched_at=self._clock(),
        )
        try:
            with db.begin_nested():
                db.add(match)
        except IntegrityError:
            # 상대 쪽 evaluate가 먼저 만들었음
            logger.debug("Auto match %s-%s already created concurrently", low, high)
            return None
        return match

    @staticmethod
    def _new_match_payload(match: InstantAutoMatch):
        return match.meeting_id, {
            "participant1": {"id": match.participant1_id, "nickname": match.participant1.nickname},
            "participant2": {"id": match.participant2_id, "nickname": match.participant2.nickname},
            "chatRoomId": match.chat_room_id,
        }

    # ---------------------------------------------------------------- queries

    def get_my_matches(self, participant_id: int) -> List[MatchSummary]:
        with self._session_factory() as db:
            if db.get(InstantParticipant, participant_id) is None:
                raise NotFound("Participant not found")
            rows = db.scalars(
                select(InstantAutoMatch)
                .where(
                    or_(
                        InstantAutoMatch.participant1_id == participant_id,
                        InstantAutoMatch.participant2_id == participant_id,
                    )
                )
                .order_by(InstantAutoMatch.matched_at.desc(), InstantAutoMatch.id.desc())
            ).all()
            out = []
            for m in rows:
                other = m.participant2 if m.participant1_id == participant_id else m.participant1
                out.append(MatchSummary(id=m.id, nickname=other.nickname, chat_room_id=m.chat_room_id, matched_at=m.matched_at))
            return out

    def get_participant_stats(self, participant_id: int) -> ParticipantStats:
        with self._session_factory() as db:
            if db.get(InstantParticipant, participant_id) is None:
                raise NotFound("Participant not found")
            match_count = db.scalar(
                select(func.count(InstantAutoMatch.id)).where(
                    or_(
                        InstantAutoMatch.participant1_id == participant_id,
                        InstantAutoMatch.participant2_id == participant_id,
                    )
                )
            )
            last = db.scalars(
                select(InstantMatchAttempt)
                .where(InstantMatchAttempt.participant_id == participant_id)
                .order_by(InstantMatchAttempt.created_at.desc(), InstantMatchAttempt.id.desc())
            ).first()
            return ParticipantStats(
                matches=match_count or 0,
                last_attempt_at=last.created_at if last else None,
                potential_matches=last.potential_matches if last else 0,
            )
