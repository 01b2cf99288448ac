# 지오펜스 검증: GPS 좌표 또는 서명된 QR로 위치 그룹 입장(체크인) 처리

import hashlib
import hmac
import json
import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum as PyEnum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from nearmatch.crud.group_crud import get_active_group, grant_membership, list_active_groups
from nearmatch.errors import Expired, InvalidSignature, NotFound, OutOfRange, ValidationError
from nearmatch.models.base import as_utc, utcnow
from nearmatch.models.check_in import CheckIn, CheckInMethod
from nearmatch.models.location_group import LocationGroup, MemberRole
from nearmatch.services.geo import Coordinate, GeoBounds, distance_meters, parse_bounds, validate_coordinate

logger = logging.getLogger(__name__)

QR_TYPE = "location_group"
QR_TTL_MS = int(os.getenv("QR_TTL_MS", str(5 * 60 * 1000)))
SIGNATURE_HEX_LENGTH = 16
GEO_BOUNDS: Optional[GeoBounds] = parse_bounds(os.getenv("GEO_BOUNDS"))
HISTORY_LIMIT = 100


class CheckInStatus(str, PyEnum):
    CHECKED_IN = "CHECKED_IN"  # 체크인 + 멤버십 신규 부여
    ALREADY_MEMBER = "ALREADY_MEMBER"  # 체크인은 기록, 이미 멤버


@dataclass
class CheckInResult:
    status: CheckInStatus
    check_in: CheckIn
    group: LocationGroup
    distance_m: Optional[float] = None  # QR 체크인은 None

    @property
    def already_member(self) -> bool:
        return self.status == CheckInStatus.ALREADY_MEMBER


@dataclass
class NearbyGroup:
    group: LocationGroup
    distance_m: float


def sign_subject(secret: str, subject: str) -> str:
    """HMAC-SHA256(secret, subject) hex 앞 16자."""
    digest = hmac.new(secret.encode("utf-8"), subject.encode("utf-8"), hashlib.sha256).hexdigest()
    return digest[:SIGNATURE_HEX_LENGTH]


def encode_qr_payload(payload: Mapping[str, Any]) -> str:
    return json.dumps(dict(payload), separators=(",", ":"))


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return (as_utc(value) - _EPOCH) // timedelta(milliseconds=1)


class GeoFenceVerifier:
    """
    위치 그룹 입장 검증기.

    - verify_gps: 좌표가 그룹 반경 안이면 체크인 + 멤버십 부여
    - issue_qr_token / verify_qr: 그룹 단위 서명 QR (서명은 발급마다 바뀌지 않음, 신선도는 timestamp로만 판단)

    실패 시 체크인 행을 남기지 않음 (감사 로그 오염 방지).
    ⚠️ commit하지 않음. 호출자(라우터)가 트랜잭션을 제어.
    """

    def __init__(
        self,
        db: Session,
        secret: Optional[str] = None,
        bounds: Optional[GeoBounds] = GEO_BOUNDS,
        qr_ttl_ms: int = QR_TTL_MS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        # GPS 검증에는 필요 없음. QR 발급/검증 시점에만 확인
        self._secret = secret or None
        self.bounds = bounds
        self.qr_ttl_ms = qr_ttl_ms
        self._clock = clock

    # ------------------------------------------------------------------ groups

    def create_group(
        self,
        creator_id: int,
        name: str,
        center: Coordinate,
        radius_m: float,
        description: Optional[str] = None,
    ) -> LocationGroup:
        """그룹 생성 + 생성자를 ADMIN 멤버로 등록."""
        if not validate_coordinate(center, self.bounds):
            raise ValidationError("Invalid group center coordinate")
        if radius_m <= 0:
            raise ValidationError("radius_m must be positive")
        group = LocationGroup(
            name=name,
            description=description,
            center_lat=center.latitude,
            center_lng=center.longitude,
            radius_m=radius_m,
            created_by=creator_id,
            created_at=self._clock(),
        )
        self.db.add(group)
        self.db.flush()
        grant_membership(self.db, group.id, creator_id, role=MemberRole.ADMIN)
        return group

    def find_nearby_groups(self, center: Coordinate, radius_m: float) -> List[NearbyGroup]:
        """반경 내 활성 그룹, 가까운 순."""
        if not validate_coordinate(center):
            raise ValidationError("Invalid coordinate")
        out: List[NearbyGroup] = []
        for group in list_active_groups(self.db):
            d = distance_meters(center, Coordinate(group.center_lat, group.center_lng))
            if d <= radius_m:
                out.append(NearbyGroup(group=group, distance_m=d))
        out.sort(key=lambda n: n.distance_m)
        return out

    # -------------------------------------------------------------------- GPS

    def verify_gps(
        self,
        user_id: int,
        group_id: int,
        claimed: Coordinate,
        accuracy: Optional[float] = None,
    ) -> CheckInResult:
        if not validate_coordinate(claimed, self.bounds):
            raise ValidationError("Invalid coordinate")
        group = get_active_group(self.db, group_id)

        d = distance_meters(claimed, Coordinate(group.center_lat, group.center_lng))
        if d > group.radius_m:
            logger.info(
                "GPS check-in rejected user=%s group=%s distance=%.1fm radius=%.1fm",
                user_id, group_id, d, group.radius_m,
            )
            raise OutOfRange(distance_m=d, radius_m=group.radius_m)

        check_in = self._append_check_in(user_id, group.id, claimed, accuracy, CheckInMethod.GPS)
        status = self._admit(user_id, group.id)
        return CheckInResult(status=status, check_in=check_in, group=group, distance_m=d)

    # --------------------------------------------------------------------- QR

    def issue_qr_token(self, group_id: int) -> Dict[str, Any]:
        group = get_active_group(self.db, group_id)
        return {
            "type": QR_TYPE,
            "groupId": str(group.id),
            "timestamp": to_epoch_ms(self._clock()),
            "signature": sign_subject(self._signing_secret(), group.signing_subject),
        }

    def verify_qr(self, user_id: int, payload: Union[str, bytes, Mapping[str, Any]]) -> CheckInResult:
        data = self._parse_qr_payload(payload)
        group = self.db.get(LocationGroup, data["group_id"])
        if group is None or not group.is_active:
            raise NotFound("Location group not found")

        expected = sign_subject(self._signing_secret(), group.signing_subject)
        if not hmac.compare_digest(expected, data["signature"]):
            # 위치에 귀속시킬 수 없는 시도이므로 기록하지 않음
            logger.warning("QR check-in with invalid signature user=%s group=%s", user_id, group.id)
            raise InvalidSignature("QR signature does not match")

        age_ms = to_epoch_ms(self._clock()) - data["timestamp"]
        if age_ms > self.qr_ttl_ms:
            raise Expired("QR code has expired")

        # QR 입장은 GPS 주장을 포함하지 않음 → (0, 0)
        check_in = self._append_check_in(user_id, group.id, Coordinate(0.0, 0.0), None, CheckInMethod.QR)
        status = self._admit(user_id, group.id)
        return CheckInResult(status=status, check_in=check_in, group=group)

    def _parse_qr_payload(self, payload: Union[str, bytes, Mapping[str, Any]]) -> Dict[str, Any]:
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError:
                raise ValidationError("QR payload is not valid JSON")
        if not isinstance(payload, Mapping):
            raise ValidationError("QR payload must be a JSON object")
        if payload.get("type") != QR_TYPE:
            raise ValidationError("Unsupported QR payload type")

        group_id = payload.get("groupId")
        timestamp = payload.get("timestamp")
        signature = payload.get("signature")
        # groupId는 정수 또는 숫자 문자열만 (true, 1.9 등 거부)
        if isinstance(group_id, str) and group_id.isascii() and group_id.isdigit():
            group_id = int(group_id)
        elif isinstance(group_id, bool) or not isinstance(group_id, int):
            raise ValidationError("QR payload has an invalid groupId")
        # json.loads는 NaN/Infinity도 float으로 읽음
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or not math.isfinite(timestamp):
            raise ValidationError("QR payload has an invalid timestamp")
        if not isinstance(signature, str) or not signature:
            raise ValidationError("QR payload has no signature")
        return {"group_id": group_id, "timestamp": int(timestamp), "signature": signature}

    # ---------------------------------------------------------------- history

    def get_check_ins(self, group_id: int, page: int = 1, limit: int = 20) -> List[CheckIn]:
        if self.db.get(LocationGroup, group_id) is None:
            raise NotFound("Location group not found")
        q = (
            select(CheckIn)
            .where(CheckIn.group_id == group_id)
            .order_by(CheckIn.created_at.desc(), CheckIn.id.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        )
        return list(self.db.scalars(q))

    def get_user_location_history(self, user_id: int, days: int = 7) -> List[CheckIn]:
        """최근 days일 GPS 체크인 (QR 체크인은 좌표가 없으므로 제외), 최신순 최대 100건."""
        since = self._clock() - timedelta(days=days)
        q = (
            select(CheckIn)
            .where(
                CheckIn.user_id == user_id,
                CheckIn.method == CheckInMethod.GPS.value,
                CheckIn.is_valid.is_(True),
                CheckIn.created_at >= since,
            )
            .order_by(CheckIn.created_at.desc(), CheckIn.id.desc())
            .limit(HISTORY_LIMIT)
        )
        return list(self.db.scalars(q))

    # --------------------------------------------------------------- internal

    def _signing_secret(self) -> str:
        if self._secret is None:
            raise ValueError("QR signing secret is not configured")
        return self._secret

    def _append_check_in(
        self,
        user_id: int,
        group_id: int,
        coordinate: Coordinate,
        accuracy: Optional[float],
        method: CheckInMethod,
    ) -> CheckIn:
        check_in = CheckIn(
            user_id=user_id,
            group_id=group_id,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            accuracy=accuracy,
            method=method.value,
            is_valid=True,
            created_at=self._clock(),
        )
        self.db.add(check_in)
        self.db.flush()
        return check_in

    def _admit(self, user_id: int, group_id: int) -> CheckInStatus:
        _, granted = grant_membership(self.db, group_id, user_id)
        if granted:
            logger.info("Granted membership user=%s group=%s", user_id, group_id)
            return CheckInStatus.CHECKED_IN
        return CheckInStatus.ALREADY_MEMBER
