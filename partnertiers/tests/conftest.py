from __future__ import annotations

from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
import pytest

from partnertiers.core.config import Settings
from partnertiers.services.achievements.config import default_rewards_config
from partnertiers.services.engine import TierEngine
from partnertiers.services.telemetry import reset_counters
from partnertiers.tests.utils.clock import FixedClock


@pytest.fixture
async def redis():
    # Each test gets its own in-memory server so keys never leak between tests.
    client = FakeRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings() -> Settings:
    # Inline side effects keep award assertions deterministic.
    return Settings(
        _env_file=None,
        achievement_side_effect_mode="inline",
        cron_secret="test-cron-secret",
        renewal_max_concurrency=2,
    )


@pytest.fixture
async def engine(redis, settings, clock) -> TierEngine:
    engine = TierEngine.create(redis, settings, default_rewards_config(), clock)
    yield engine
    await engine.aclose()


@pytest.fixture(autouse=True)
def reset_telemetry() -> None:
    reset_counters()
    yield
    reset_counters()
