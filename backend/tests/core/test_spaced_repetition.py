"""Spaced Repetition — verifies the SM-2 style schedule.

Invariants:
    - Correct streak intervals: 1 day, 6 days, then round(interval * ease)
    - A miss resets the streak and interval
    - ease never drops below 1.3
"""

from datetime import datetime, timedelta, timezone

import pytest

from tutorassist.core.spaced_repetition import MIN_EASE, ReviewState, schedule_review

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def test_first_correct_answer_schedules_one_day():
    state = schedule_review(ReviewState(), True, NOW)
    assert state.streak == 1
    assert state.interval_days == 1
    assert state.ease == pytest.approx(2.6)
    assert state.next_due == NOW + timedelta(days=1)
    assert state.last_seen == NOW
    assert state.last_outcome == "correct"


def test_correct_streak_grows_interval():
    first = schedule_review(ReviewState(), True, NOW)
    second = schedule_review(first, True, NOW)
    third = schedule_review(second, True, NOW)
    assert second.interval_days == 6
    # 6 days * ease 2.7 from the second review
    assert third.interval_days == 16
    assert third.total_reviews == 3
    assert third.total_correct == 3


def test_miss_resets_streak_and_lowers_ease():
    state = ReviewState(ease=2.8, interval_days=16, streak=3, total_reviews=3, total_correct=3)
    missed = schedule_review(state, False, NOW)
    assert missed.streak == 0
    assert missed.interval_days == 1
    assert missed.ease == pytest.approx(2.6)
    assert missed.total_correct == 3
    assert missed.last_outcome == "incorrect"


def test_ease_has_a_floor():
    missed = schedule_review(ReviewState(ease=1.4), False, NOW)
    assert missed.ease == MIN_EASE


def test_input_state_is_not_mutated():
    state = ReviewState()
    schedule_review(state, True, NOW)
    assert state.streak == 0
    assert state.total_reviews == 0
