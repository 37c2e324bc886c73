from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "partnertiers"
    log_level: str = "INFO"

    # Redis holds every durable record: partners, awards, events, history.
    redis_url: str = "redis://localhost:6379/0"
    # Remote rewards document; defaults apply when the key is empty.
    rewards_config_key: str = "rewards:config"
    # Keep config snapshots long enough for an admin rollback window.
    rewards_config_history_ttl_days: int = 90
    # Trailing window used by the engagement factor.
    engagement_window_days: int = 30
    # Page sizes for event log and tier history listings.
    rating_event_list_limit: int = 100
    tier_history_list_limit: int = 50
    # "background" schedules award side effects as tasks; "inline" awaits them for deterministic tests.
    achievement_side_effect_mode: str = "background"
    # Bound parallel partner renewals in a batch run.
    renewal_max_concurrency: int = 4
    # Lease held per partner while its renewal transition runs.
    renewal_lock_ttl_s: int = 300
    renewal_queue_name: str = "tier-renewal"
    # Shared secret expected by the scheduler-facing cron endpoint.
    cron_secret: str | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
