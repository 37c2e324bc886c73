from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from partnertiers.core.config import get_settings
from partnertiers.core.logging import configure_logging
from partnertiers.persistence.redis import create_redis
from partnertiers.services.achievements.config import RewardsConfigStore
from partnertiers.services.engine import TierEngine


logger = logging.getLogger(__name__)


async def run_tier_renewals(ctx) -> dict[str, int]:
    engine: TierEngine = ctx["engine"]
    stats = await engine.renewals.process_all_due_renewals()
    return stats.model_dump()


async def renew_partner(ctx, partner_id: str) -> dict[str, object]:
    # On-demand renewal for a single partner, enqueued by admin tooling.
    engine: TierEngine = ctx["engine"]
    result = await engine.renewals.force_renewal(partner_id)
    return result.model_dump(mode="json")


async def _startup(ctx) -> None:
    # arq's own connection returns bytes; the engine gets a decoded client of its own.
    settings = get_settings()
    configure_logging(settings.log_level)
    redis = create_redis(settings)
    rewards_config = await RewardsConfigStore(redis, settings=settings).load()
    ctx["store_redis"] = redis
    ctx["engine"] = TierEngine.create(redis, settings, rewards_config)
    logger.info("renewal_worker_started queue=%s", settings.renewal_queue_name)


async def _shutdown(ctx) -> None:
    engine: TierEngine | None = ctx.get("engine")
    if engine is not None:
        await engine.aclose()
    redis = ctx.get("store_redis")
    if redis is not None:
        await redis.aclose()


class WorkerSettings:
    # Keep worker configuration as class attributes for arq CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.renewal_queue_name
    functions = [renew_partner]
    # Monthly sweep; partners whose anniversary has not passed are skipped.
    cron_jobs = [cron(run_tier_renewals, day=1, hour=0, minute=0, unique=True)]
    on_startup = _startup
    on_shutdown = _shutdown
