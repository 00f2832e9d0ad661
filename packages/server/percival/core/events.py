"""
Post-commit fan-out of activity events over Redis.

Each committed event is pushed onto a capped per-project buffer (so a client
that reconnects can catch up) and published on the project channel plus the
global ``activity`` channel. This runs after the transaction has committed:
a Redis failure is logged and the change stands.
"""

from __future__ import annotations

import structlog
from redis.exceptions import RedisError

from percival.core.config import get_settings
from percival.core.redis import get_redis
from percival_shared.schemas.activity import ActivityEventRead

log = structlog.get_logger()

BUFFER_SIZE = 1000
GLOBAL_CHANNEL = "activity"


def project_channel(project_id) -> str:
    return f"activity:project:{project_id}"


async def publish_activity(events: list[ActivityEventRead]) -> None:
    if not events or not get_settings().publish_activity:
        return
    try:
        client = await get_redis()
        pipe = client.pipeline()
        for event in events:
            payload = event.model_dump_json()
            if event.project_id is not None:
                channel = project_channel(event.project_id)
                buffer_key = f"{channel}:buffer"
                pipe.lpush(buffer_key, payload)
                pipe.ltrim(buffer_key, 0, BUFFER_SIZE - 1)
                pipe.publish(channel, payload)
            pipe.publish(GLOBAL_CHANNEL, payload)
        await pipe.execute()
    except RedisError as exc:
        log.warning("activity.publish_failed", error=str(exc), events=len(events))
        return
    log.debug("activity.published", events=len(events))
