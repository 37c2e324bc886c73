from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Any, Iterator, TypeVar

from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from partnertiers.core.config import Settings, get_settings
from partnertiers.core.errors import StoreUnavailableError


logger = logging.getLogger(__name__)


def create_redis(settings: Settings | None = None) -> Redis:
    # Build one client per process; callers own its lifecycle and inject it into services.
    settings = settings or get_settings()
    return Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


@contextmanager
def store_call(operation: str) -> Iterator[None]:
    # Translate transport failures into the store-unavailable error; retries belong to the client.
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        logger.warning("store_unavailable operation=%s", operation, exc_info=exc)
        raise StoreUnavailableError(f"store unavailable during {operation}") from exc


ModelT = TypeVar("ModelT", bound=BaseModel)


def to_hash(model: BaseModel) -> dict[str, str]:
    # Flatten a model into string fields; None becomes "" since hashes cannot hold nulls.
    payload: dict[str, str] = {}
    for field, value in model.model_dump(mode="json").items():
        if value is None:
            payload[field] = ""
        elif isinstance(value, bool):
            payload[field] = "true" if value else "false"
        else:
            payload[field] = str(value)
    return payload


def from_hash(model: type[ModelT], raw: dict[str, Any] | None) -> ModelT | None:
    # Empty hashes mean "missing"; empty strings fall back to model defaults.
    if not raw:
        return None
    cleaned = {field: value for field, value in raw.items() if value != ""}
    return model.model_validate(cleaned)
