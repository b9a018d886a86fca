"""
Spaced Repetition System (SRS) scheduling engine.

This module implements a variant of the SM-2 algorithm, originally developed by
Piotr Wozniak for SuperMemo. Given an item's current review state and a
self-reported recall grade, it computes the next state, including the absolute
time at which the item becomes due again.

Everything here is a pure computation. Time is read only through an injected
Clock, so a fixed clock makes every result reproducible. Persisting the state,
choosing which item to show and capturing the grade are the caller's job.
"""

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol, Tuple

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from . import conf

logger = logging.getLogger(__name__)


# Algorithm constants
MIN_EASE_FACTOR = 1.3      # Floor enforced after every update
DEFAULT_EASE_FACTOR = 2.5  # Starting ease factor for new items
FIRST_INTERVAL = 1         # First successful review: 1 day
SECOND_INTERVAL = 6        # Second successful review: 6 days
FAILED_INTERVAL = 1        # Any failed review: back tomorrow
PASSING_GRADE = 3
MIN_GRADE = 0
MAX_GRADE = 5


class Grade(models.IntegerChoices):
    """Self-assessed recall quality, 0 (total failure) to 5 (effortless)."""
    BLACKOUT = 0, 'Forgotten'
    WRONG = 1, 'Wrong'
    WRONG_FAMILIAR = 2, 'Difficult'
    HARD = 3, 'Hard'
    GOOD = 4, 'Good'
    EASY = 5, 'Perfect'

    @property
    def description(self):
        return GRADE_DESCRIPTIONS[self]

    @property
    def passing(self):
        return self >= PASSING_GRADE


GRADE_DESCRIPTIONS = {
    Grade.BLACKOUT: 'Complete blackout, no recognition',
    Grade.WRONG: 'Incorrect answer',
    Grade.WRONG_FAMILIAR: 'Incorrect, but remembered upon seeing the answer',
    Grade.HARD: 'Correct, with significant difficulty',
    Grade.GOOD: 'Correct, with some hesitation',
    Grade.EASY: 'Perfect response, immediate recall',
}


class ReviewPhase(models.TextChoices):
    NEW = 'new', 'New'
    LEARNING = 'learning', 'Learning'
    MATURE = 'mature', 'Mature'


class InvalidGradeError(ValueError):
    """Raised when a grade falls outside 0-5."""


class ScheduleOverflowError(ValueError):
    """Raised when the next due date falls past the last representable date."""


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock, honouring the project's USE_TZ setting."""

    def now(self) -> datetime:
        return timezone.now()


class FixedClock:
    """Clock frozen at a single instant, for replays and tests."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def __repr__(self):
        return f"FixedClock({self.instant.isoformat()})"


SYSTEM_CLOCK = SystemClock()


def phase_for(repetition: int) -> ReviewPhase:
    """
    Classify an item by its run of successful reviews.

    Mature items are those whose next successful review grows the interval
    by the ease factor rather than using a fixed step.
    """
    if repetition <= 0:
        return ReviewPhase.NEW
    if repetition == 1:
        return ReviewPhase.LEARNING
    return ReviewPhase.MATURE


@dataclass(frozen=True)
class ReviewState:
    """Scheduling memory for one item and one learner."""
    interval: int  # days
    repetition: int
    ease_factor: float
    due: datetime

    @property
    def phase(self) -> ReviewPhase:
        return phase_for(self.repetition)

    @property
    def is_mastered(self) -> bool:
        return (
            self.repetition >= conf.get('MASTERED_REPETITIONS')
            and self.ease_factor >= conf.get('MASTERED_EASE_FACTOR')
        )

    def to_dict(self) -> dict:
        """Return the state as JSON-representable primitives."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data

    @staticmethod
    def from_dict(data: dict) -> 'ReviewState':
        """
        Rebuild a state from the output of to_dict(). Extra keys, such as a
        result's `next_review`, are ignored.

        Raises KeyError for a missing field and ValueError when a count is
        not a whole number, the ease factor is not a number or `due` is not
        an ISO-8601 timestamp. Timestamps without an offset are taken to be
        in the current time zone when USE_TZ is on.
        """
        return ReviewState(
            interval=_parse_count('interval', data['interval']),
            repetition=_parse_count('repetition', data['repetition']),
            ease_factor=_parse_ease(data['ease_factor']),
            due=_parse_instant(data['due']),
        )


@dataclass(frozen=True)
class ReviewResult(ReviewState):
    """A new state, plus `next_review`, which always equals `due`."""
    next_review: datetime

    def to_state(self) -> ReviewState:
        return ReviewState(
            interval=self.interval,
            repetition=self.repetition,
            ease_factor=self.ease_factor,
            due=self.due,
        )


@dataclass(frozen=True)
class ReviewInput:
    """One grading event. `reviewed_at` falls back to the clock when None."""
    grade: int
    reviewed_at: Optional[datetime] = None


def _parse_count(name, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a whole number, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{name} must be a whole number, got {value!r}")
        value = int(value)
    return value


def _parse_ease(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"ease_factor must be a number, got {value!r}")
    return float(value)


def _parse_instant(value) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = parse_datetime(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValueError(f"Not an ISO-8601 timestamp: {value!r}")
    if settings.USE_TZ and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def validate_grade(grade) -> int:
    """Return `grade` unchanged, or raise InvalidGradeError."""
    if isinstance(grade, bool) or not isinstance(grade, int):
        logger.warning(f"Rejected non-integer grade {grade!r}")
        raise InvalidGradeError(f"Grade must be an integer, got {grade!r}")
    if grade < MIN_GRADE or grade > MAX_GRADE:
        logger.warning(f"Rejected out-of-range grade {grade}")
        raise InvalidGradeError(
            f"Grade must be between {MIN_GRADE} and {MAX_GRADE}, got {grade}"
        )
    return grade


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def calculate_ease_factor(current_ease: float, grade: int) -> float:
    """
    Calculate the new ease factor after a successful review.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3.

    Grade 5 raises the ease factor by 0.1, grade 4 leaves it unchanged and
    grade 3 lowers it by 0.14.
    """
    adjustment = 0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02)
    return max(MIN_EASE_FACTOR, current_ease + adjustment)


def calculate_interval(
    current_interval: int,
    repetition: int,
    ease_factor: float,
    grade: int
) -> Tuple[int, int]:
    """
    Calculate the next interval and updated repetition count.

    Returns tuple of (new_interval, new_repetition).

    For successful reviews (grade >= 3), based on the count before this review:
    - No prior success: 1 day
    - One prior success: 6 days
    - Otherwise: previous interval * ease factor, rounded

    Failed reviews (grade < 3) go back to a 1-day interval.
    """
    if grade < PASSING_GRADE:
        return (FAILED_INTERVAL, 0)

    if repetition == 0:
        new_interval = FIRST_INTERVAL
    elif repetition == 1:
        new_interval = SECOND_INTERVAL
    else:
        new_interval = round_half_up(current_interval * ease_factor)

    return (new_interval, repetition + 1)


def initial_state(now: Optional[datetime] = None, clock: Optional[Clock] = None) -> ReviewState:
    """Create the state of an item that has never been reviewed, due immediately."""
    if now is None:
        now = (clock or SYSTEM_CLOCK).now()
    return ReviewState(
        interval=0,
        repetition=0,
        ease_factor=DEFAULT_EASE_FACTOR,
        due=now,
    )


def reset_state(now: Optional[datetime] = None, clock: Optional[Clock] = None) -> ReviewState:
    """Discard all progress on an item."""
    return initial_state(now=now, clock=clock)


def is_due(state: ReviewState, clock: Optional[Clock] = None) -> bool:
    return state.due <= (clock or SYSTEM_CLOCK).now()


def review(
    state: ReviewState,
    review_input: ReviewInput,
    clock: Optional[Clock] = None
) -> ReviewResult:
    """
    Apply one graded review to an item's state.

    This is the main entry point of the scheduler. The review instant is
    `review_input.reviewed_at` when set, otherwise `clock.now()`. The next
    due time is measured from that instant, not from the previous due time,
    so reviewing late never carries the lateness forward.

    A failed review keeps the ease factor as it was; only successful
    reviews move it.

    Raises:
        InvalidGradeError: the grade is not an integer in 0-5.
        ScheduleOverflowError: the new interval reaches past year 9999.
    """
    grade = validate_grade(review_input.grade)

    reviewed_at = review_input.reviewed_at
    if reviewed_at is None:
        reviewed_at = (clock or SYSTEM_CLOCK).now()

    new_interval, new_repetition = calculate_interval(
        state.interval, state.repetition, state.ease_factor, grade
    )
    if grade >= PASSING_GRADE:
        new_ease = calculate_ease_factor(state.ease_factor, grade)
    else:
        new_ease = state.ease_factor
    try:
        due = reviewed_at + timedelta(days=new_interval)
    except OverflowError as exc:
        raise ScheduleOverflowError(
            f"Interval of {new_interval} days from {reviewed_at.isoformat()} "
            f"is out of range"
        ) from exc

    logger.debug(
        f"Grade {grade}: interval {state.interval}->{new_interval}, "
        f"repetition {state.repetition}->{new_repetition}, "
        f"ease {state.ease_factor:.2f}->{new_ease:.2f}, due {due.isoformat()}"
    )

    return ReviewResult(
        interval=new_interval,
        repetition=new_repetition,
        ease_factor=new_ease,
        due=due,
        next_review=due,
    )
