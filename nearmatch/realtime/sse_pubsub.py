# SSE + Redis Pub/Sub: 즉석 모임 이벤트(featureUpdated / newMatch) 실시간 전달
# SSE: 폴링 없이 서버→클라이언트 푸시 (long-lived connection → 예외 처리 필수)

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import AsyncGenerator

import redis.asyncio as redis

from nearmatch.realtime.events import REDIS_URL, meeting_channel

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 15.0

# 모듈 단일 클라이언트 재사용 (매 루프마다 새 연결 생성 방지)
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


def _event_name(data: str) -> str:
    try:
        return json.loads(data).get("type") or "message"
    except (ValueError, AttributeError):
        return "message"


async def stream_meeting_events(meeting_id: int) -> AsyncGenerator[str, None]:
    """
    GET /instant-meetings/{id}/events/stream 용.
    meeting:{id}:events 채널 구독 → payload의 type을 SSE event 이름으로 전달.
    """
    channel = meeting_channel(meeting_id)
    pubsub = redis_client.pubsub()
    try:
        await pubsub.subscribe(channel)
        last_heartbeat = datetime.now(timezone.utc).timestamp()

        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            now = datetime.now(timezone.utc).timestamp()
            if now - last_heartbeat >= HEARTBEAT_INTERVAL:
                yield ": ping\n\n"
                last_heartbeat = now
            if message and message.get("type") == "message":
                data = message.get("data") or ""
                yield f"event: {_event_name(data)}\ndata: {data}\n\n"
    except asyncio.CancelledError:
        pass
    except redis.RedisError:
        logger.warning("Event stream for meeting %s lost its Redis connection", meeting_id, exc_info=True)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.close()
