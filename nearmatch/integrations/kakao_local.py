# Kakao Local API 연동 (좌표 → 주소 역지오코딩)
# 체크인 판정은 거리만으로 하므로 주소 조회 실패는 체크인을 막지 않음

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

KAKAO_REST_API_KEY = os.getenv("KAKAO_REST_API_KEY", "")
KAKAO_LOCAL_BASE_URL = os.getenv("KAKAO_LOCAL_BASE_URL", "https://dapi.kakao.com")
COORD_TO_ADDRESS_PATH = "/v2/local/geo/coord2address.json"
UNKNOWN_REGION = "unknown"


@dataclass
class LocationInfo:
    address: str
    city: str
    district: str
    postal_code: Optional[str] = None


def fallback_address(lat: float, lng: float) -> str:
    return f"lat {lat}, lng {lng}"


def _standardize(doc: Dict[str, Any]) -> LocationInfo:
    """Kakao 문서를 통일 필드로 변환. 도로명 주소 우선, 없으면 지번 주소."""
    road = doc.get("road_address") or {}
    region = doc.get("address") or {}
    return LocationInfo(
        address=road.get("address_name") or region.get("address_name") or "",
        city=road.get("region_1depth_name") or region.get("region_1depth_name") or "",
        district=road.get("region_2depth_name") or region.get("region_2depth_name") or "",
        postal_code=road.get("zone_no") or None,
    )


async def reverse_geocode(
    lat: float,
    lng: float,
    client: Optional[httpx.AsyncClient] = None,
    api_key: Optional[str] = None,
) -> LocationInfo:
    """
    Kakao coord2address 호출.
    키 미설정 / HTTP 오류 / 결과 없음은 예외로 올림 (대체 문구 처리는 describe_location).
    """
    key = KAKAO_REST_API_KEY if api_key is None else api_key
    if not key:
        raise ValueError("KAKAO_REST_API_KEY가 설정되지 않았습니다.")
    url = f"{KAKAO_LOCAL_BASE_URL.rstrip('/')}{COORD_TO_ADDRESS_PATH}"
    params = {"x": str(lng), "y": str(lat)}
    headers = {"Authorization": f"KakaoAK {key}"}

    if client is None:
        async with httpx.AsyncClient(timeout=5.0) as own_client:
            resp = await own_client.get(url, params=params, headers=headers)
    else:
        resp = await client.get(url, params=params, headers=headers)

    if resp.status_code != 200:
        raise RuntimeError(f"Kakao API 오류: HTTP {resp.status_code}")
    documents = resp.json().get("documents") or []
    if not documents:
        raise LookupError("No address found for coordinates")
    return _standardize(documents[0])


async def describe_location(
    lat: float,
    lng: float,
    client: Optional[httpx.AsyncClient] = None,
    api_key: Optional[str] = None,
) -> LocationInfo:
    """역지오코딩 best effort: 실패 시 "lat X, lng Y" 대체 문구."""
    try:
        info = await reverse_geocode(lat, lng, client=client, api_key=api_key)
    except (httpx.HTTPError, ValueError, RuntimeError, LookupError):
        logger.warning("Reverse geocoding failed for (%s, %s)", lat, lng, exc_info=True)
        return LocationInfo(address=fallback_address(lat, lng), city=UNKNOWN_REGION, district=UNKNOWN_REGION)
    if not info.address:
        info.address = fallback_address(lat, lng)
    return info
