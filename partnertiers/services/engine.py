from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from redis.asyncio import Redis

from partnertiers.core.config import Settings, get_settings
from partnertiers.services.achievements.config import RewardsConfig, default_rewards_config
from partnertiers.services.achievements.definitions import AchievementCatalog
from partnertiers.services.achievements.tiers import TierRulesTable
from partnertiers.services.achievements.tracker import AchievementTracker
from partnertiers.services.achievements.triggers import AchievementTriggers
from partnertiers.services.rating.calculator import RatingCalculator
from partnertiers.services.rating.events import RatingEventLog
from partnertiers.services.tiers.admin import TierAdminService
from partnertiers.services.tiers.eligibility import TierEligibilityEngine
from partnertiers.services.tiers.renewal import AnnualRenewalProcessor


@dataclass(slots=True)
class TierEngine:
    """Every service wired around one store client and one rewards config."""

    redis: Redis
    settings: Settings
    rewards_config: RewardsConfig
    catalog: AchievementCatalog
    rules: TierRulesTable
    tracker: AchievementTracker
    triggers: AchievementTriggers
    events: RatingEventLog
    calculator: RatingCalculator
    eligibility: TierEligibilityEngine
    renewals: AnnualRenewalProcessor
    admin: TierAdminService
    clock: Callable[[], datetime] | None = None

    @classmethod
    def create(
        cls,
        redis: Redis,
        settings: Settings | None = None,
        rewards_config: RewardsConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "TierEngine":
        settings = settings or get_settings()
        rewards_config = rewards_config or default_rewards_config()
        catalog = rewards_config.catalog()
        rules = rewards_config.tier_rules()
        tracker = AchievementTracker(redis, catalog, clock=clock)
        triggers = AchievementTriggers(redis, tracker)
        eligibility = TierEligibilityEngine(redis, tracker, rules, clock=clock)
        return cls(
            redis=redis,
            settings=settings,
            rewards_config=rewards_config,
            catalog=catalog,
            rules=rules,
            tracker=tracker,
            triggers=triggers,
            events=RatingEventLog(redis, triggers, settings=settings, clock=clock),
            calculator=RatingCalculator(redis, settings=settings, clock=clock),
            eligibility=eligibility,
            renewals=AnnualRenewalProcessor(redis, eligibility, settings=settings, clock=clock),
            admin=TierAdminService(redis, settings=settings, clock=clock),
            clock=clock,
        )

    def with_rewards_config(self, rewards_config: RewardsConfig) -> "TierEngine":
        # Config changes take effect by building a new engine, never by mutating this one.
        return TierEngine.create(self.redis, self.settings, rewards_config, self.clock)

    async def aclose(self) -> None:
        # Let in-flight award side effects finish before the client goes away.
        await self.events.drain()
