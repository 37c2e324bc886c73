from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from redis.asyncio import Redis

from partnertiers.core.config import Settings, get_settings
from partnertiers.core.errors import RewardsConfigError
from partnertiers.domain.models import TIER_HIERARCHY, AchievementDefinition, PartnerTier, TierRequirement
from partnertiers.persistence import keys
from partnertiers.persistence.redis import store_call
from partnertiers.services.achievements.definitions import DEFAULT_ACHIEVEMENTS, AchievementCatalog
from partnertiers.services.achievements.tiers import DEFAULT_TIER_REQUIREMENTS, TierRulesTable


logger = logging.getLogger(__name__)


class RewardsConfig(BaseModel):
    """Achievement catalog plus tier rules table, loaded at startup."""

    model_config = ConfigDict(frozen=True)

    achievements: dict[str, AchievementDefinition]
    tier_requirements: dict[PartnerTier, TierRequirement]
    last_updated: datetime | None = None
    updated_by: str | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "RewardsConfig":
        for key, definition in self.achievements.items():
            if key != definition.id:
                raise ValueError(f"achievement key {key} does not match id {definition.id}")
        for tier in TIER_HIERARCHY:
            requirement = self.tier_requirements.get(tier)
            if requirement is None:
                raise ValueError(f"tier requirements missing for {tier.value}")
            if requirement.tier != tier:
                raise ValueError(f"tier requirement under {tier.value} is declared as {requirement.tier.value}")
            unknown = [aid for aid in requirement.achievements.required if aid not in self.achievements]
            if unknown:
                raise ValueError(f"{tier.value} requires unknown achievements: {', '.join(unknown)}")
        return self

    def catalog(self) -> AchievementCatalog:
        return AchievementCatalog(self.achievements.values())

    def tier_rules(self) -> TierRulesTable:
        return TierRulesTable(self.tier_requirements)


def default_rewards_config() -> RewardsConfig:
    return RewardsConfig(
        achievements={definition.id: definition for definition in DEFAULT_ACHIEVEMENTS},
        tier_requirements={requirement.tier: requirement for requirement in DEFAULT_TIER_REQUIREMENTS},
    )


def parse_rewards_config(payload: Any) -> RewardsConfig:
    # Raise typed errors so API handlers map bad documents to 400s.
    try:
        if isinstance(payload, (str, bytes)):
            return RewardsConfig.model_validate_json(payload)
        return RewardsConfig.model_validate(payload)
    except ValidationError as exc:
        raise RewardsConfigError(str(exc)) from exc


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RewardsConfigStore:
    """Remote rewards document with versioned snapshots.

    The store is a cold-boot/refresh source: callers load once and build an
    engine from the result instead of reading it per calculation.
    """

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

    @property
    def _key(self) -> str:
        return self._settings.rewards_config_key

    async def load(self) -> RewardsConfig:
        # Fall back to the built-in tables when the document is missing or unreadable.
        with store_call("load_rewards_config"):
            stored = await self._redis.get(self._key)
        if not stored:
            return default_rewards_config()
        try:
            return parse_rewards_config(stored)
        except RewardsConfigError as exc:
            logger.error("rewards_config_invalid key=%s", self._key, exc_info=exc)
            return default_rewards_config()

    async def save(self, config: RewardsConfig, updated_by: str | None = None) -> RewardsConfig:
        # Snapshot every saved version so an admin can roll back.
        now = self._clock()
        timestamp = now.isoformat()
        stamped = config.model_copy(update={"last_updated": now, "updated_by": updated_by})
        payload = stamped.model_dump_json()
        ttl_s = int(self._settings.rewards_config_history_ttl_days) * 24 * 60 * 60
        with store_call("save_rewards_config"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(keys.rewards_config_history(self._key, timestamp), payload, ex=ttl_s)
                pipe.set(self._key, payload)
                await pipe.execute()
        logger.info("rewards_config_saved updated_by=%s", updated_by)
        return stamped

    async def history(self, limit: int = 20) -> list[RewardsConfig]:
        # Most recent snapshots first; ISO timestamps sort lexicographically.
        pattern = keys.rewards_config_history(self._key, "*")
        with store_call("rewards_config_history"):
            history_keys = [key async for key in self._redis.scan_iter(match=pattern)]
            selected = sorted(history_keys, reverse=True)[: max(limit, 0)]
            raw_configs = [await self._redis.get(key) for key in selected]
        configs: list[RewardsConfig] = []
        for key, raw in zip(selected, raw_configs):
            if not raw:
                continue
            try:
                configs.append(parse_rewards_config(raw))
            except RewardsConfigError:
                logger.error("rewards_config_history_invalid key=%s", key)
        return configs

    async def rollback(self, timestamp: str, updated_by: str | None = None) -> RewardsConfig:
        with store_call("rollback_rewards_config"):
            stored = await self._redis.get(keys.rewards_config_history(self._key, timestamp))
        if not stored:
            raise RewardsConfigError(f"no configuration found for timestamp: {timestamp}")
        return await self.save(parse_rewards_config(stored), updated_by)
