from partnertiers.services.achievements.config import (
    RewardsConfig,
    RewardsConfigStore,
    default_rewards_config,
    parse_rewards_config,
)
from partnertiers.services.achievements.definitions import AchievementCatalog, default_catalog
from partnertiers.services.achievements.tiers import TierRulesTable, default_tier_rules
from partnertiers.services.achievements.tracker import AchievementTracker
from partnertiers.services.achievements.triggers import AchievementTriggers

__all__ = [
    "AchievementCatalog",
    "AchievementTracker",
    "AchievementTriggers",
    "RewardsConfig",
    "RewardsConfigStore",
    "TierRulesTable",
    "default_catalog",
    "default_rewards_config",
    "default_tier_rules",
    "parse_rewards_config",
]
