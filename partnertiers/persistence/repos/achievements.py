from __future__ import annotations

from datetime import datetime

from redis.asyncio import Redis

from partnertiers.persistence import keys
from partnertiers.persistence.redis import store_call


def repeatable_field(achievement_id: str, sequence: int) -> str:
    return f"{achievement_id}_{sequence}"


async def award_once(redis: Redis, partner_id: str, achievement_id: str, completed_at: datetime) -> bool:
    # HSETNX is the single conditional write; concurrent awards cannot both succeed.
    with store_call("award_once"):
        created = await redis.hsetnx(keys.achievements(partner_id), achievement_id, completed_at.isoformat())
    return bool(created)


async def award_repeatable(redis: Redis, partner_id: str, achievement_id: str, completed_at: datetime) -> str:
    # Sequence numbers come from an atomic counter; skip any slot already taken by legacy data.
    while True:
        with store_call("award_repeatable"):
            sequence = await redis.hincrby(keys.achievement_sequences(partner_id), achievement_id, 1)
            field = repeatable_field(achievement_id, int(sequence))
            created = await redis.hsetnx(keys.achievements(partner_id), field, completed_at.isoformat())
        if created:
            return field


async def list_awards(redis: Redis, partner_id: str) -> dict[str, str]:
    with store_call("list_awards"):
        return dict(await redis.hgetall(keys.achievements(partner_id)))


async def has_award(redis: Redis, partner_id: str, field: str) -> bool:
    with store_call("has_award"):
        return bool(await redis.hexists(keys.achievements(partner_id), field))


async def remove_award(redis: Redis, partner_id: str, field: str) -> bool:
    with store_call("remove_award"):
        removed = await redis.hdel(keys.achievements(partner_id), field)
    return int(removed) > 0


async def clear_awards(redis: Redis, partner_id: str) -> None:
    with store_call("clear_awards"):
        await redis.delete(keys.achievements(partner_id), keys.achievement_sequences(partner_id))
