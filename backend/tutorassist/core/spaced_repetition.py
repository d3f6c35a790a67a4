"""Spaced Repetition — simplified SM-2 scheduling, pure and deterministic.

Invariants:
    - ease never drops below 1.3
    - Correct answers: streak 1 -> 1 day, streak 2 -> 6 days, then round(interval * ease)
    - Incorrect answers reset streak to 0 and interval to 1 day
    - next_due = now + interval_days; the caller supplies `now`

Design Decisions:
    - Frozen dataclass in, frozen dataclass out: the ORM row is updated by the
      caller, keeping this module free of IO
    - Ease is updated AFTER the interval is computed (interval uses the previous ease)
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

DEFAULT_EASE = 2.5
MIN_EASE = 1.3
EASE_BONUS = 0.1
EASE_PENALTY = 0.2
SECOND_INTERVAL_DAYS = 6


@dataclass(frozen=True)
class ReviewState:
    ease: float = DEFAULT_EASE
    interval_days: int = 1
    streak: int = 0
    total_reviews: int = 0
    total_correct: int = 0
    next_due: datetime | None = None
    last_seen: datetime | None = None
    last_outcome: str | None = None


def _round_half_up(value: float) -> int:
    """Match conventional rounding (2.5 -> 3), not banker's rounding."""
    return int(value + 0.5)


def schedule_review(state: ReviewState, is_correct: bool, now: datetime) -> ReviewState:
    """Apply one review outcome and return the next state."""
    if is_correct:
        streak = state.streak + 1
        if streak == 1:
            interval = 1
        elif streak == 2:
            interval = SECOND_INTERVAL_DAYS
        else:
            interval = _round_half_up(state.interval_days * state.ease)
        ease = max(MIN_EASE, state.ease + EASE_BONUS)
        total_correct = state.total_correct + 1
    else:
        streak = 0
        interval = 1
        ease = max(MIN_EASE, state.ease - EASE_PENALTY)
        total_correct = state.total_correct

    return replace(
        state,
        ease=round(ease, 4),
        interval_days=interval,
        streak=streak,
        total_reviews=state.total_reviews + 1,
        total_correct=total_correct,
        next_due=now + timedelta(days=interval),
        last_seen=now,
        last_outcome="correct" if is_correct else "incorrect",
    )
