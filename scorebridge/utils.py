from __future__ import annotations

import math

try:
    from constants import LOG_PREVIEW_CHARS
except ImportError:
    from .constants import LOG_PREVIEW_CHARS


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# Half-up rounding everywhere; builtin round() is banker's rounding and drifts on .5 values.
def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def summarize_text(text: str, limit: int = LOG_PREVIEW_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"
