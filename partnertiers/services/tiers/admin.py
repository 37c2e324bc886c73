from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable

from redis.asyncio import Redis

from partnertiers.core.config import Settings, get_settings
from partnertiers.core.errors import TierChangeError
from partnertiers.domain.models import PartnerTier, TierChangeReason, TierHistoryEntry
from partnertiers.persistence.repos import partners as partners_repo
from partnertiers.persistence.repos.tier_history import list_tier_history, record_tier_change
from partnertiers.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TierAdminService:
    """Manual tier overrides and the tier audit trail."""

    def __init__(
        self,
        redis: Redis,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._redis = redis
        self._settings = settings or get_settings()
        self._clock = clock or _utc_now

    async def change_tier_manually(
        self,
        partner_id: str,
        tier: PartnerTier,
        note: str | None = None,
    ) -> TierHistoryEntry:
        partner = await partners_repo.require_partner(self._redis, partner_id)
        if partner.tier == tier:
            raise TierChangeError(f"partner {partner_id} is already {tier.value}")
        entry = TierHistoryEntry(
            partner_id=partner_id,
            tier=tier,
            reason=TierChangeReason.MANUAL,
            previous_tier=partner.tier,
            changed_at=self._clock(),
            note=note,
        )
        await partners_repo.update_partner(self._redis, partner_id, tier=tier)
        await record_tier_change(self._redis, entry)
        increment_counter("tier_manual_changes_total")
        logger.info(
            "partner_tier_changed_manually partner_id=%s previous_tier=%s tier=%s",
            partner_id,
            partner.tier.value,
            tier.value,
        )
        return entry

    async def tier_history(self, partner_id: str, limit: int | None = None) -> list[TierHistoryEntry]:
        await partners_repo.require_partner(self._redis, partner_id)
        size = limit if limit is not None else self._settings.tier_history_list_limit
        return await list_tier_history(self._redis, partner_id, size)
