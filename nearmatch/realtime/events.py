# 아웃바운드 이벤트 채널: 엔진은 publish()만 호출하고 전송(푸시/SSE)은 구독자 몫
# Redis Pub/Sub: 멀티 워커 환경에서도 발행/구독 분리

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

# Docker 환경에서는 localhost가 아니라 서비스명(redis)을 사용해야 함
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")

EVENT_FEATURE_UPDATED = "featureUpdated"
EVENT_NEW_MATCH = "newMatch"
EVENT_MATCH_CREATED = "matchCreated"


def meeting_channel(meeting_id: int) -> str:
    return f"meeting:{meeting_id}:events"


def user_channel(user_id: int) -> str:
    return f"user:{user_id}:events"


def build_message(event: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": event,
        "payload": payload,
        "ts": datetime.now(timezone.utc).isoformat(),
    }


class EventPublisher:
    """엔진이 쓰는 출력 채널 인터페이스."""

    def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class RedisEventPublisher(EventPublisher):
    """Redis 채널로 JSON 발행. Redis 미기동 시 로그만 남기고 본 요청은 유지."""

    def __init__(self, client: Optional[redis.Redis] = None, url: str = REDIS_URL):
        self._client = client or redis.Redis.from_url(url, decode_responses=True)

    def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        message = json.dumps(build_message(event, payload), ensure_ascii=False)
        try:
            self._client.publish(channel, message)
        except redis.RedisError:
            logger.warning("Failed to publish %s to %s", event, channel, exc_info=True)


@dataclass
class PublishedEvent:
    channel: str
    event: str
    payload: Dict[str, Any]


class InMemoryEventPublisher(EventPublisher):
    """프로세스 내 기록용 (테스트/로컬 실행)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: List[PublishedEvent] = []

    def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.events.append(PublishedEvent(channel, event, payload))

    def of_type(self, event: str) -> List[PublishedEvent]:
        with self._lock:
            return [e for e in self.events if e.event == event]
