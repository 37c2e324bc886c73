from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    # Scores and percentages round .5 upward rather than to the nearest even integer.
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))
