from __future__ import annotations

from redis.asyncio import Redis

from partnertiers.domain.models import AnnualMetric
from partnertiers.persistence import keys
from partnertiers.persistence.redis import store_call


async def get_annual_progress(redis: Redis, partner_id: str) -> dict[AnnualMetric, int]:
    with store_call("get_annual_progress"):
        raw = await redis.hgetall(keys.annual_progress(partner_id))
    progress: dict[AnnualMetric, int] = {}
    for metric in AnnualMetric:
        value = raw.get(metric.value) if raw else None
        try:
            progress[metric] = int(value) if value else 0
        except (TypeError, ValueError):
            progress[metric] = 0
    return progress


async def increment_annual_metric(
    redis: Redis,
    partner_id: str,
    metric: AnnualMetric,
    amount: int = 1,
) -> int:
    # Counters only grow within a cycle; HINCRBY keeps concurrent increments exact.
    if amount < 0:
        raise ValueError("annual metrics cannot be decremented")
    with store_call("increment_annual_metric"):
        value = await redis.hincrby(keys.annual_progress(partner_id), metric.value, amount)
    return int(value)


async def reset_annual_progress(redis: Redis, partner_id: str) -> None:
    # Renewal starts a fresh cycle with every counter at zero.
    with store_call("reset_annual_progress"):
        await redis.hset(
            keys.annual_progress(partner_id),
            mapping={metric.value: "0" for metric in AnnualMetric},
        )
