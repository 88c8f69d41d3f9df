"""
SM-2 Spaced Repetition Engine.

Pure functions computing the next review interval and ease factor for a
cuecard from a single review outcome. No I/O.

Ease factors are stored as integers (x100), so 250 means a 2.5 multiplier.

Response-time quality scale (correct answers only):
5 - answered in under 3 seconds
4 - answered in under 8 seconds
3 - answered, but slowly
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from config import Settings, get_settings


@dataclass(frozen=True)
class SM2Config:
    """Tuning knobs for the SM-2 engine."""

    initial_ease: int = 250
    min_ease: int = 130
    max_ease: int = 350
    failure_penalty: int = 20
    first_interval: int = 1
    second_interval: int = 6
    fast_response_ms: int = 3000
    medium_response_ms: int = 8000

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SM2Config:
        settings = settings or get_settings()
        return cls(
            initial_ease=settings.sm2_initial_ease,
            min_ease=settings.sm2_min_ease,
            max_ease=settings.sm2_max_ease,
            failure_penalty=settings.sm2_failure_penalty,
            second_interval=settings.sm2_second_interval,
            fast_response_ms=settings.sm2_fast_response_ms,
            medium_response_ms=settings.sm2_medium_response_ms,
        )


DEFAULT_CONFIG = SM2Config()


def round_half_up(value: float) -> int:
    """Round .5 towards positive infinity instead of to the nearest even."""
    return math.floor(value + 0.5)


def next_interval(
    current_interval: int,
    ease_factor: int,
    is_correct: bool,
    config: SM2Config = DEFAULT_CONFIG,
) -> int:
    """
    Calculate the next review interval in days.

    Args:
        current_interval: Current interval in days (0 for a never-reviewed card)
        ease_factor: Current ease factor (x100)
        is_correct: Whether the card was answered correctly

    Returns:
        New interval in days, never below 1
    """
    if not is_correct:
        return config.first_interval

    if current_interval == 0:
        return config.first_interval

    if current_interval == 1:
        # Fixed second step regardless of ease
        return config.second_interval

    return round_half_up(current_interval * ease_factor / 100)


def quality_from_response_time(response_time_ms: int, config: SM2Config = DEFAULT_CONFIG) -> int:
    """Grade a correct answer 3-5 by how quickly it came."""
    if response_time_ms < config.fast_response_ms:
        return 5
    if response_time_ms < config.medium_response_ms:
        return 4
    return 3


def clamp_ease(ease_factor: int, config: SM2Config = DEFAULT_CONFIG) -> int:
    return min(max(ease_factor, config.min_ease), config.max_ease)


def next_ease_factor(
    current_ease: int,
    is_correct: bool,
    response_time_ms: int,
    config: SM2Config = DEFAULT_CONFIG,
) -> int:
    """
    Calculate the new ease factor.

    Incorrect answers cost a flat penalty (floored at min_ease). Correct
    answers apply the SM-2 adjustment
    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    with q derived from the response time, clamped to [min_ease, max_ease].
    """
    if not is_correct:
        return max(current_ease - config.failure_penalty, config.min_ease)

    quality = quality_from_response_time(response_time_ms, config)
    adjustment = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
    return clamp_ease(round_half_up(current_ease + adjustment * 100), config)
