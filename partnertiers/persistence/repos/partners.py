from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from redis.asyncio import Redis

from partnertiers.core.errors import PartnerNotFoundError
from partnertiers.domain.models import Partner
from partnertiers.persistence import keys
from partnertiers.persistence.redis import from_hash, store_call, to_hash


async def get_partner(redis: Redis, partner_id: str) -> Partner | None:
    with store_call("get_partner"):
        raw = await redis.hgetall(keys.partner(partner_id))
    return from_hash(Partner, raw)


async def require_partner(redis: Redis, partner_id: str) -> Partner:
    partner = await get_partner(redis, partner_id)
    if partner is None:
        raise PartnerNotFoundError(partner_id)
    return partner


async def create_partner(redis: Redis, partner: Partner) -> None:
    # Index by creation time so batch jobs can walk every partner in order.
    with store_call("create_partner"):
        async with redis.pipeline(transaction=True) as pipe:
            pipe.hset(keys.partner(partner.id), mapping=to_hash(partner))
            pipe.zadd(keys.all_partners(), {partner.id: partner.created_at.timestamp() * 1000})
            await pipe.execute()


async def update_partner(redis: Redis, partner_id: str, **fields: Any) -> None:
    # Write only the provided fields; the portal owns the rest of the hash.
    mapping: dict[str, str] = {}
    for field, value in fields.items():
        if value is None:
            mapping[field] = ""
        elif isinstance(value, datetime):
            mapping[field] = value.isoformat()
        elif isinstance(value, Enum):
            mapping[field] = str(value.value)
        else:
            mapping[field] = str(value)
    if not mapping:
        return
    with store_call("update_partner"):
        await redis.hset(keys.partner(partner_id), mapping=mapping)


async def list_partner_ids(redis: Redis) -> list[str]:
    with store_call("list_partner_ids"):
        return list(await redis.zrange(keys.all_partners(), 0, -1))
