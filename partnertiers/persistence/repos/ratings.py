from __future__ import annotations

from datetime import datetime

from redis.asyncio import Redis

from partnertiers.domain.models import RatingCalculation, RatingEvent
from partnertiers.persistence import keys
from partnertiers.persistence.redis import store_call


def _score(moment: datetime) -> float:
    # Sorted-set scores are epoch milliseconds.
    return moment.timestamp() * 1000


async def append_event(redis: Redis, event: RatingEvent) -> None:
    # Members embed a unique id, so ZADD never overwrites an earlier event.
    with store_call("append_rating_event"):
        await redis.zadd(keys.rating_events(event.partner_id), {event.model_dump_json(): _score(event.created_at)})


async def list_recent_events(redis: Redis, partner_id: str, limit: int = 100) -> list[RatingEvent]:
    with store_call("list_recent_events"):
        raw_events = await redis.zrange(keys.rating_events(partner_id), 0, max(limit, 1) - 1, desc=True)
    return [RatingEvent.model_validate_json(raw) for raw in raw_events]


async def list_events_in_range(
    redis: Redis,
    partner_id: str,
    start: datetime,
    end: datetime,
) -> list[RatingEvent]:
    # Inclusive time range in insertion order.
    with store_call("list_events_in_range"):
        raw_events = await redis.zrangebyscore(keys.rating_events(partner_id), _score(start), _score(end))
    return [RatingEvent.model_validate_json(raw) for raw in raw_events]


async def get_cached_calculation(redis: Redis, partner_id: str) -> RatingCalculation | None:
    with store_call("get_cached_calculation"):
        raw = await redis.get(keys.rating_calculation(partner_id))
    if not raw:
        return None
    return RatingCalculation.model_validate_json(raw)


async def set_cached_calculation(redis: Redis, calculation: RatingCalculation) -> None:
    with store_call("set_cached_calculation"):
        await redis.set(keys.rating_calculation(calculation.partner_id), calculation.model_dump_json())


async def set_last_login(redis: Redis, partner_id: str, moment: datetime) -> None:
    with store_call("set_last_login"):
        await redis.set(keys.last_login(partner_id), moment.isoformat())


async def get_last_login(redis: Redis, partner_id: str) -> datetime | None:
    with store_call("get_last_login"):
        raw = await redis.get(keys.last_login(partner_id))
    return datetime.fromisoformat(raw) if raw else None
