from __future__ import annotations

from collections import defaultdict


_counters: dict[str, int] = defaultdict(int)


def increment_counter(name: str, value: int = 1) -> None:
    # Store counters for award, renewal and failure dashboards.
    _counters[name] += value


def get_counters() -> dict[str, int]:
    return dict(_counters)


def reset_counters() -> None:
    # Reset counters for deterministic tests.
    _counters.clear()
