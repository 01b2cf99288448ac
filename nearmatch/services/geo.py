# 거리/방위 계산 + 좌표 검증. 운영 영역 판정만 shapely 사용

import math
from dataclasses import dataclass
from typing import Optional

from shapely.geometry import Point, box

EARTH_RADIUS_M = 6_371_000


@dataclass(frozen=True)
class Coordinate:
    """WGS84 위경도 (도 단위)."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class GeoBounds:
    """운영 영역 사각형. 테스트용/오류 GPS 좌표를 걸러내는 데 사용."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def contains(self, c: Coordinate) -> bool:
        # shapely는 (x, y) = (lng, lat) 순서. 경계 위의 점도 허용(covers).
        region = box(self.min_lng, self.min_lat, self.max_lng, self.max_lat)
        return region.covers(Point(c.longitude, c.latitude))


def parse_bounds(text: Optional[str]) -> Optional[GeoBounds]:
    """
    "min_lat,min_lng,max_lat,max_lng" → GeoBounds. 비어 있으면 None (영역 제한 없음).
    min/max가 뒤바뀌어 와도 sorted()로 보정.
    """
    if not text or not text.strip():
        return None
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 4:
        raise ValueError(f"GEO_BOUNDS must have 4 comma-separated numbers, got {text!r}")
    lat_a, lng_a, lat_b, lng_b = (float(p) for p in parts)
    lat_lo, lat_hi = sorted([lat_a, lat_b])
    lng_lo, lng_hi = sorted([lng_a, lng_b])
    return GeoBounds(lat_lo, lng_lo, lat_hi, lng_hi)


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Haversine 대원 거리(m). distance(a, b) == distance(b, a), distance(a, a) == 0."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlam = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    # 부동소수 오차로 h가 1을 살짝 넘는 경우(대척점) 방어
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def bearing_degrees(a: Coordinate, b: Coordinate) -> float:
    """a에서 b로 향하는 초기 방위각 [0, 360)."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dlam = math.radians(b.longitude - a.longitude)
    y = math.sin(dlam) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlam)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def validate_coordinate(c: Coordinate, bounds: Optional[GeoBounds] = None) -> bool:
    """위도 [-90, 90], 경도 [-180, 180]. bounds가 있으면 운영 영역 안이어야 함."""
    lat, lng = c.latitude, c.longitude
    if lat is None or lng is None:
        return False
    if math.isnan(lat) or math.isnan(lng):
        return False
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return False
    if bounds is not None and not bounds.contains(c):
        return False
    return True


def format_distance(meters: float) -> str:
    """사용자 노출용 거리 문자열: 1km 미만은 m, 이상은 소수 1자리 km."""
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"
