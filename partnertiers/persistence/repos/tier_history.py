from __future__ import annotations

import logging

from pydantic import ValidationError
from redis.asyncio import Redis

from partnertiers.domain.models import TierHistoryEntry
from partnertiers.persistence import keys
from partnertiers.persistence.redis import store_call


logger = logging.getLogger(__name__)


async def record_tier_change(redis: Redis, entry: TierHistoryEntry) -> None:
    # Append-only audit trail ordered by change time.
    score = entry.changed_at.timestamp() * 1000
    with store_call("record_tier_change"):
        await redis.zadd(keys.tier_history(entry.partner_id), {entry.model_dump_json(): score})


async def list_tier_history(redis: Redis, partner_id: str, limit: int = 50) -> list[TierHistoryEntry]:
    # Newest entries first.
    with store_call("list_tier_history"):
        raw_entries = await redis.zrange(keys.tier_history(partner_id), 0, max(limit, 1) - 1, desc=True)
    entries: list[TierHistoryEntry] = []
    for raw in raw_entries:
        try:
            entries.append(TierHistoryEntry.model_validate_json(raw))
        except ValidationError:
            logger.error("tier_history_entry_invalid partner_id=%s", partner_id)
    return entries
