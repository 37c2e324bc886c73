from __future__ import annotations

import asyncio

from partnertiers.core.config import get_settings
from partnertiers.core.logging import configure_logging
from partnertiers.persistence.redis import create_redis
from partnertiers.services.achievements.config import RewardsConfigStore
from partnertiers.services.engine import TierEngine


async def process() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    redis = create_redis(settings)
    try:
        rewards_config = await RewardsConfigStore(redis, settings=settings).load()
        engine = TierEngine.create(redis, settings, rewards_config)
        stats = await engine.renewals.process_all_due_renewals()
        await engine.aclose()
    finally:
        await redis.aclose()
    for field, value in stats.model_dump().items():
        print(f"{field}={value}")


if __name__ == "__main__":
    asyncio.run(process())
