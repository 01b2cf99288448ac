# 위치 그룹 내 추천: 호환성 점수로 후보 정렬 (좋아요 전까지 익명)

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from nearmatch.crud.group_crud import is_active_member
from nearmatch.errors import NotAMember, ValidationError
from nearmatch.models.base import as_utc, utcnow
from nearmatch.models.location_group import GroupMember, MemberStatus
from nearmatch.models.match import UserLike
from nearmatch.models.user import DELETED_USER_NICKNAME, User

logger = logging.getLogger(__name__)

BASE_SCORE = 50
AGE_WEIGHT = 25
COMPLETENESS_POINTS = 5
NOISE_MAX = 10.0

# (활동 후 경과 시간, 가산점) - 연속 감쇠가 아니라 계단식
RECENCY_STEPS = (
    (timedelta(hours=1), 20),
    (timedelta(hours=6), 15),
    (timedelta(hours=24), 10),
    (timedelta(hours=72), 5),
)


@dataclass
class ScoredCandidate:
    """추천 결과. nickname은 마스킹, bio는 항상 None."""

    user_id: int
    nickname: str
    age: Optional[int]
    gender: Optional[str]
    profile_image: Optional[str]
    last_active: Optional[datetime]
    score: int
    bio: Optional[str] = None


def age_gap_compatibility(a: int, b: int) -> float:
    """나이 차 1살당 10점 감점."""
    return _clamp(100 - 10 * abs(a - b), 0, 100)


def mask_nickname(nickname: Optional[str]) -> str:
    if not nickname:
        return ""
    return nickname[0] + "*" * (len(nickname) - 1)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class CompatibilityRanker:
    def __init__(
        self,
        db: Session,
        age_compatibility: Callable[[int, int], float] = age_gap_compatibility,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self._age_compatibility = age_compatibility
        self._rng = rng or random.Random()
        self._clock = clock

    def recommend(self, user_id: int, group_id: int, count: int = 10) -> List[ScoredCandidate]:
        """
        그룹 멤버 추천.

        1) 요청자는 그룹의 활성 멤버여야 함 (NotAMember)
        2) 본인 + 이미 좋아요한 사용자 제외
        3) 나이/성별이 있는 활성 멤버를 최대 2*count명 조회
        4) 점수 계산 → 내림차순 → 상위 count명 (익명 처리)
        """
        if count <= 0:
            raise ValidationError("count must be positive")
        me = self.db.get(User, user_id)
        if me is None or not is_active_member(self.db, group_id, user_id):
            raise NotAMember("You are not a member of this group")

        liked = select(UserLike.to_user_id).where(UserLike.from_user_id == user_id)
        q = (
            select(User)
            .join(GroupMember, GroupMember.user_id == User.id)
            .where(
                GroupMember.group_id == group_id,
                GroupMember.status == MemberStatus.ACTIVE.value,
                User.id != user_id,
                User.id.not_in(liked),
                User.is_active.is_(True),
                User.nickname != DELETED_USER_NICKNAME,
                User.age.is_not(None),
                User.gender.is_not(None),
            )
            .order_by(User.last_active.desc(), User.id)
            .limit(count * 2)
        )
        candidates = list(self.db.scalars(q))

        scored = [
            ScoredCandidate(
                user_id=c.id,
                nickname=mask_nickname(c.nickname),
                age=c.age,
                gender=c.gender,
                profile_image=c.profile_image,
                last_active=c.last_active,
                score=self.compatibility(me, c),
            )
            for c in candidates
        ]
        scored.sort(key=lambda s: s.score, reverse=True)
        logger.debug("Ranked %d candidate(s) for user=%s group=%s", len(scored), user_id, group_id)
        return scored[:count]

    def compatibility(self, me: User, candidate: User) -> int:
        score = float(BASE_SCORE)

        if me.age is not None and candidate.age is not None:
            age_score = _clamp(self._age_compatibility(me.age, candidate.age), 0, 100)
            score += age_score / 100 * AGE_WEIGHT

        score += self._recency_points(candidate.last_active)

        if candidate.profile_image:
            score += COMPLETENESS_POINTS
        if candidate.bio and len(candidate.bio) > 20:
            score += COMPLETENESS_POINTS
        if candidate.nickname and len(candidate.nickname) > 2:
            score += COMPLETENESS_POINTS

        # 동점/고정 순서 방지용 탐색 노이즈
        score += self._rng.uniform(0, NOISE_MAX)

        return _round_half_up(_clamp(score, 0, 100))

    def _recency_points(self, last_active: Optional[datetime]) -> int:
        if last_active is None:
            return 0
        elapsed = self._clock() - as_utc(last_active)
        for limit, points in RECENCY_STEPS:
            if elapsed < limit:
                return points
        return 0
