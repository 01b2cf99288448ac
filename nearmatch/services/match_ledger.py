# 매칭 원장: 쌍당 1개 매칭 보장, 만료 처리, 공통 연결(함께 아는 사람/그룹) 계산

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set

from sqlalchemy import exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nearmatch.errors import InvalidTransition, NotAMember, NotFound, ValidationError
from nearmatch.models.base import utcnow
from nearmatch.models.location_group import GroupMember, MemberStatus
from nearmatch.models.match import ChatMessage, Match, MatchStatus, UserLike
from nearmatch.services.match_status import check_status_transition

logger = logging.getLogger(__name__)

MATCH_EXPIRY_DAYS = int(os.getenv("MATCH_EXPIRY_DAYS", "30"))


@dataclass
class MutualConnections:
    user_ids: List[int] = field(default_factory=list)
    group_ids: List[int] = field(default_factory=list)


@dataclass
class LikeResult:
    like: UserLike
    match: Optional[Match] = None  # 상호 좋아요가 성립했을 때만
    new_match: bool = False

    @property
    def is_match(self) -> bool:
        return self.match is not None


def _same_group(column, group_id: Optional[int]):
    # NULL 컨텍스트는 = 비교가 안 되므로 IS NULL
    return column.is_(None) if group_id is None else column == group_id


class MatchLedger:
    """
    Match 상태: ACTIVE → EXPIRED → DELETED (ACTIVE → DELETED 가능, 역방향 없음)

    ⚠️ commit하지 않음. 호출자(라우터)가 commit 후 이벤트 발행.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self._clock = clock

    # --------------------------------------------------------------- matches

    def find_live_match(self, user_a: int, user_b: int, group_id: Optional[int] = None) -> Optional[Match]:
        low, high = sorted((user_a, user_b))
        return self.db.scalars(
            select(Match).where(
                Match.user1_id == low,
                Match.user2_id == high,
                _same_group(Match.group_id, group_id),
                Match.status != MatchStatus.DELETED.value,
            )
        ).first()

    def create_match_if_absent(self, user_a: int, user_b: int, group_id: Optional[int] = None) -> Match:
        """같은 쌍 + 같은 컨텍스트의 삭제되지 않은 매칭이 있으면 그대로 반환 (멱등)."""
        if user_a == user_b:
            raise ValidationError("Cannot match a user with themselves")

        existing = self.find_live_match(user_a, user_b, group_id)
        if existing is not None:
            return existing

        low, high = sorted((user_a, user_b))
        now = self._clock()
        match = Match(
            user1_id=low,
            user2_id=high,
            group_id=group_id,
            status=MatchStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.db.begin_nested():
                self.db.add(match)
        except IntegrityError:
            winner = self.find_live_match(user_a, user_b, group_id)
            if winner is None:
                raise
            return winner

        logger.info("Match created %s-%s group=%s", low, high, group_id)
        return match

    def get_match_for_party(self, match_id: int, user_id: int) -> Match:
        match = self.db.get(Match, match_id)
        if match is None:
            raise NotFound("Match not found")
        if user_id not in (match.user1_id, match.user2_id):
            raise NotAMember("You are not part of this match")
        return match

    def transition(self, match_id: int, target: MatchStatus) -> Match:
        match = self.db.get(Match, match_id)
        if match is None:
            raise NotFound("Match not found")
        target_value = MatchStatus(target).value
        err = check_status_transition(match.status, target_value)
        if err is not None:
            raise InvalidTransition(err)
        match.status = target_value
        match.updated_at = self._clock()
        self.db.flush()
        return match

    def delete_match(self, match_id: int, user_id: int) -> Match:
        """당사자만 삭제 가능. 쌍의 좋아요에서 매칭 표시 해제."""
        match = self.get_match_for_party(match_id, user_id)
        self.transition(match.id, MatchStatus.DELETED)
        self.db.execute(
            update(UserLike)
            .where(
                or_(
                    (UserLike.from_user_id == match.user1_id) & (UserLike.to_user_id == match.user2_id),
                    (UserLike.from_user_id == match.user2_id) & (UserLike.to_user_id == match.user1_id),
                ),
                _same_group(UserLike.group_id, match.group_id),
            )
            .values(is_match=False)
            .execution_options(synchronize_session="fetch")
        )
        return match

    def expire_inactive_matches(
        self,
        older_than_days: int = MATCH_EXPIRY_DAYS,
        require_no_messages: bool = True,
    ) -> int:
        """cutoff 이전에 생성된 ACTIVE 매칭을 일괄 EXPIRED 처리. 변경 건수 반환."""
        now = self._clock()
        cutoff = now - timedelta(days=older_than_days)
        conditions = [
            Match.status == MatchStatus.ACTIVE.value,
            Match.created_at < cutoff,
        ]
        if require_no_messages:
            conditions.append(~exists().where(ChatMessage.match_id == Match.id))

        result = self.db.execute(
            update(Match)
            .where(*conditions)
            .values(status=MatchStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        expired = result.rowcount or 0
        if expired:
            logger.info("Expired %d inactive match(es) older than %d days", expired, older_than_days)
        return expired

    def get_user_matches(self, user_id: int, status: Optional[MatchStatus] = MatchStatus.ACTIVE) -> List[Match]:
        q = select(Match).where(or_(Match.user1_id == user_id, Match.user2_id == user_id))
        if status is not None:
            q = q.where(Match.status == MatchStatus(status).value)
        q = q.order_by(Match.created_at.desc(), Match.id.desc())
        return list(self.db.scalars(q))

    # -------------------------------------------------------- mutual network

    def _active_partners(self, user_id: int) -> Set[int]:
        rows = self.db.execute(
            select(Match.user1_id, Match.user2_id).where(
                Match.status == MatchStatus.ACTIVE.value,
                or_(Match.user1_id == user_id, Match.user2_id == user_id),
            )
        ).all()
        # user1/user2 어느 쪽에 있든 상대를 수집
        return {u2 if u1 == user_id else u1 for u1, u2 in rows}

    def _active_groups(self, user_id: int) -> Set[int]:
        return set(
            self.db.scalars(
                select(GroupMember.group_id).where(
                    GroupMember.user_id == user_id,
                    GroupMember.status == MemberStatus.ACTIVE.value,
                )
            )
        )

    def get_mutual_connections(self, match_id: int, user_id: int) -> MutualConnections:
        match = self.get_match_for_party(match_id, user_id)
        a, b = match.user1_id, match.user2_id
        users = (self._active_partners(a) & self._active_partners(b)) - {a, b}
        groups = self._active_groups(a) & self._active_groups(b)
        return MutualConnections(user_ids=sorted(users), group_ids=sorted(groups))

    # ----------------------------------------------------------------- likes

    def _find_like(self, from_user_id: int, to_user_id: int, group_id: Optional[int]) -> Optional[UserLike]:
        return self.db.scalars(
            select(UserLike).where(
                UserLike.from_user_id == from_user_id,
                UserLike.to_user_id == to_user_id,
                _same_group(UserLike.group_id, group_id),
            )
        ).first()

    def record_like(self, from_user_id: int, to_user_id: int, group_id: Optional[int] = None) -> LikeResult:
        """좋아요 기록 (중복 호출 무해). 상대도 이미 좋아요했다면 매칭 생성."""
        if from_user_id == to_user_id:
            raise ValidationError("Cannot like yourself")

        like = self._find_like(from_user_id, to_user_id, group_id)
        if like is None:
            like = UserLike(
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                group_id=group_id,
                is_match=False,
                created_at=self._clock(),
            )
            try:
                with self.db.begin_nested():
                    self.db.add(like)
            except IntegrityError:
                like = self._find_like(from_user_id, to_user_id, group_id)
                if like is None:
                    raise

        reverse = self._find_like(to_user_id, from_user_id, group_id)
        if reverse is None:
            return LikeResult(like=like)

        like.is_match = True
        reverse.is_match = True
        existing = self.find_live_match(from_user_id, to_user_id, group_id)
        if existing is not None:
            return LikeResult(like=like, match=existing)
        match = self.create_match_if_absent(from_user_id, to_user_id, group_id)
        return LikeResult(like=like, match=match, new_match=True)
