"""
Unit tests for the scheduling app.

Test organization:
- SRSEaseFactorTests / SRSIntervalTests: the two halves of the transition
- SRSReviewTests: the full review() transition and its invariants
- SRSStateTests: initial state, reset, due checks, derived views
- SRSSerializationTests: JSON round trips of stored state
- ConfigTests: settings-driven thresholds and app checks
"""

import json
from datetime import datetime, timedelta, timezone as dt_timezone

from django.apps import apps
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings
from django.utils import timezone as django_timezone

from . import srs
from .srs import FixedClock, Grade, ReviewInput, ReviewPhase, ReviewState


FIXED = datetime(2025, 1, 1, 0, 0, 0, tzinfo=dt_timezone.utc)


def make_state(interval, repetition, ease_factor, due=FIXED):
    return ReviewState(
        interval=interval, repetition=repetition, ease_factor=ease_factor, due=due
    )


# =============================================================================
# Transition building blocks
# =============================================================================

class SRSEaseFactorTests(SimpleTestCase):
    """Tests for ease factor calculation."""

    def test_perfect_response_increases_ease(self):
        """Grade 5 adds 0.1."""
        self.assertAlmostEqual(srs.calculate_ease_factor(2.5, grade=5), 2.6)

    def test_good_response_maintains_ease(self):
        """Grade 4 is neutral."""
        self.assertAlmostEqual(srs.calculate_ease_factor(2.5, grade=4), 2.5)

    def test_hard_response_decreases_ease(self):
        """Grade 3 subtracts 0.14."""
        self.assertAlmostEqual(srs.calculate_ease_factor(2.5, grade=3), 2.36)

    def test_ease_never_below_minimum(self):
        ease = srs.MIN_EASE_FACTOR
        for _ in range(10):
            ease = srs.calculate_ease_factor(ease, grade=3)
            self.assertEqual(ease, srs.MIN_EASE_FACTOR)


class SRSIntervalTests(SimpleTestCase):
    """Tests for interval calculation."""

    def test_first_successful_review(self):
        interval, reps = srs.calculate_interval(
            current_interval=0, repetition=0, ease_factor=2.5, grade=4
        )
        self.assertEqual(interval, srs.FIRST_INTERVAL)
        self.assertEqual(reps, 1)

    def test_second_successful_review(self):
        interval, reps = srs.calculate_interval(
            current_interval=1, repetition=1, ease_factor=2.5, grade=4
        )
        self.assertEqual(interval, srs.SECOND_INTERVAL)
        self.assertEqual(reps, 2)

    def test_subsequent_review_uses_ease_factor(self):
        interval, reps = srs.calculate_interval(
            current_interval=6, repetition=2, ease_factor=2.5, grade=4
        )
        self.assertEqual(interval, 15)
        self.assertEqual(reps, 3)

    def test_uses_current_ease_not_updated_ease(self):
        """Growth multiplies by the ease factor held before this review."""
        interval, _ = srs.calculate_interval(
            current_interval=10, repetition=3, ease_factor=2.0, grade=5
        )
        self.assertEqual(interval, 20)

    def test_failed_review_resets_progress(self):
        for grade in [0, 1, 2]:
            interval, reps = srs.calculate_interval(
                current_interval=30, repetition=5, ease_factor=2.5, grade=grade
            )
            self.assertEqual(interval, 1, f"Grade {grade} should reset interval")
            self.assertEqual(reps, 0, f"Grade {grade} should reset repetition")

    def test_boundary_grade_3_is_success(self):
        _, reps = srs.calculate_interval(
            current_interval=0, repetition=0, ease_factor=2.5, grade=3
        )
        self.assertEqual(reps, 1)

    def test_halves_round_up(self):
        interval, _ = srs.calculate_interval(
            current_interval=1, repetition=2, ease_factor=2.5, grade=4
        )
        self.assertEqual(interval, 3)

    def test_round_half_up(self):
        self.assertEqual(srs.round_half_up(2.5), 3)
        self.assertEqual(srs.round_half_up(3.5), 4)
        self.assertEqual(srs.round_half_up(14.49), 14)
        self.assertEqual(srs.round_half_up(15.0), 15)


# =============================================================================
# Full transition
# =============================================================================

class SRSReviewTests(SimpleTestCase):
    """Tests for the review() transition."""

    def setUp(self):
        self.clock = FixedClock(FIXED)

    def test_first_review_schedules_tomorrow(self):
        result = srs.review(make_state(0, 0, 2.5), ReviewInput(grade=4), self.clock)
        self.assertEqual(result.interval, 1)
        self.assertEqual(result.repetition, 1)
        # Grade 4 has a zero adjustment under the SM-2 formula
        self.assertAlmostEqual(result.ease_factor, 2.5)
        self.assertEqual(result.due, FIXED + timedelta(days=1))
        self.assertEqual(result.next_review, FIXED + timedelta(days=1))

    def test_second_review_schedules_six_days(self):
        result = srs.review(make_state(1, 1, 2.5), ReviewInput(grade=5), self.clock)
        self.assertEqual(result.interval, 6)
        self.assertEqual(result.repetition, 2)
        self.assertGreater(result.ease_factor, 2.5)
        self.assertEqual(result.due, FIXED + timedelta(days=6))

    def test_mature_review_multiplies_by_ease(self):
        result = srs.review(make_state(6, 2, 2.5), ReviewInput(grade=4), self.clock)
        self.assertEqual(result.interval, 15)
        self.assertEqual(result.repetition, 3)

    def test_perfect_recall_increases_ease(self):
        result = srs.review(make_state(1, 0, 2.5), ReviewInput(grade=5), self.clock)
        self.assertAlmostEqual(result.ease_factor, 2.6)

    def test_hesitant_recall_decreases_ease(self):
        result = srs.review(make_state(1, 0, 2.5), ReviewInput(grade=3), self.clock)
        self.assertLess(result.ease_factor, 2.5)
        self.assertGreaterEqual(result.ease_factor, srs.MIN_EASE_FACTOR)

    def test_failure_resets_interval_and_repetition(self):
        result = srs.review(make_state(15, 3, 2.5), ReviewInput(grade=2), self.clock)
        self.assertEqual(result.repetition, 0)
        self.assertEqual(result.interval, 1)

    def test_failure_keeps_ease_factor(self):
        """
        A failed review leaves the ease factor untouched, unlike textbook
        SM-2. Changing this must be a deliberate decision.
        """
        result = srs.review(make_state(30, 5, 2.8), ReviewInput(grade=0), self.clock)
        self.assertEqual(result.interval, 1)
        self.assertEqual(result.repetition, 0)
        self.assertEqual(result.ease_factor, 2.8)

    def test_failure_resets_regardless_of_prior_state(self):
        states = [
            make_state(0, 0, 2.5),
            make_state(1, 1, 1.3),
            make_state(400, 12, 3.1),
        ]
        for state in states:
            for grade in [0, 1, 2]:
                result = srs.review(state, ReviewInput(grade=grade), self.clock)
                self.assertEqual((result.interval, result.repetition), (1, 0))
                self.assertEqual(result.ease_factor, state.ease_factor)

    def test_ease_floor_holds_under_repeated_hard_reviews(self):
        state = make_state(1, 0, 1.3)
        for _ in range(5):
            state = srs.review(state, ReviewInput(grade=3), self.clock)
            self.assertEqual(state.ease_factor, 1.3)

    def test_ease_can_grow_above_default(self):
        state = make_state(1, 0, 2.5)
        for _ in range(3):
            state = srs.review(state, ReviewInput(grade=5), self.clock)
        self.assertGreater(state.ease_factor, 2.5)

    def test_ease_factor_invariant_over_all_grade_sequences(self):
        state = srs.initial_state(FIXED)
        sequence = [3, 3, 0, 5, 3, 1, 3, 3, 3, 4, 2, 3, 5, 3, 3]
        for grade in sequence:
            state = srs.review(state, ReviewInput(grade=grade), self.clock)
            self.assertGreaterEqual(state.ease_factor, srs.MIN_EASE_FACTOR)
            self.assertEqual(state.due, state.next_review)

    def test_reviewed_at_overrides_clock(self):
        custom_time = datetime(2025, 1, 15, 12, 0, 0, tzinfo=dt_timezone.utc)
        result = srs.review(
            make_state(6, 2, 2.5),
            ReviewInput(grade=4, reviewed_at=custom_time),
            self.clock,
        )
        self.assertEqual(result.next_review, custom_time + timedelta(days=15))
        self.assertEqual(result.due, result.next_review)

    def test_due_measured_from_review_not_previous_due(self):
        """A late review does not push its lateness into the next interval."""
        overdue = make_state(6, 2, 2.5, due=FIXED - timedelta(days=10))
        result = srs.review(overdue, ReviewInput(grade=4), self.clock)
        self.assertEqual(result.due, FIXED + timedelta(days=15))

    def test_due_is_interval_times_24_hours(self):
        result = srs.review(make_state(6, 2, 2.5), ReviewInput(grade=4), self.clock)
        self.assertEqual(result.due - FIXED, timedelta(hours=24 * result.interval))

    def test_deterministic(self):
        state = make_state(6, 2, 2.36)
        first = srs.review(state, ReviewInput(grade=4), self.clock)
        second = srs.review(state, ReviewInput(grade=4), self.clock)
        self.assertEqual(first, second)
        self.assertEqual(
            json.dumps(first.to_dict()), json.dumps(second.to_dict())
        )

    def test_does_not_mutate_input_state(self):
        state = make_state(6, 2, 2.5)
        srs.review(state, ReviewInput(grade=5), self.clock)
        self.assertEqual(state, make_state(6, 2, 2.5))

    def test_accepts_grade_choices(self):
        result = srs.review(make_state(0, 0, 2.5), ReviewInput(grade=Grade.EASY), self.clock)
        self.assertEqual(result.repetition, 1)

    def test_default_clock_is_system_time(self):
        before = datetime.now(dt_timezone.utc)
        result = srs.review(make_state(0, 0, 2.5), ReviewInput(grade=4))
        after = datetime.now(dt_timezone.utc)
        self.assertGreaterEqual(result.due, before + timedelta(days=1))
        self.assertLessEqual(result.due, after + timedelta(days=1))

    def test_invalid_grade_raises_error(self):
        for grade in [-1, 6, 100]:
            with self.assertRaises(srs.InvalidGradeError):
                srs.review(make_state(0, 0, 2.5), ReviewInput(grade=grade), self.clock)

    def test_invalid_grade_is_value_error(self):
        with self.assertRaises(ValueError):
            srs.review(make_state(0, 0, 2.5), ReviewInput(grade=6), self.clock)

    def test_non_integer_grade_rejected(self):
        for grade in [3.5, '4', None, True]:
            with self.assertRaises(srs.InvalidGradeError):
                srs.validate_grade(grade)

    def test_invalid_grade_is_logged(self):
        with self.assertLogs('scheduling.srs', level='WARNING') as logs:
            with self.assertRaises(srs.InvalidGradeError):
                srs.validate_grade(7)
        self.assertIn('out-of-range grade 7', logs.output[0])

    def test_transition_logged_at_debug(self):
        with self.assertLogs('scheduling.srs', level='DEBUG') as logs:
            srs.review(make_state(6, 2, 2.5), ReviewInput(grade=4), self.clock)
        self.assertIn('interval 6->15', logs.output[0])

    def test_interval_past_last_date_raises_error(self):
        """Long runs of perfect grades eventually outgrow the calendar."""
        state = make_state(2_000_000, 30, 2.5)
        with self.assertRaises(srs.ScheduleOverflowError):
            srs.review(state, ReviewInput(grade=5), self.clock)

    def test_overflow_is_value_error(self):
        state = srs.initial_state(FIXED)
        with self.assertRaises(ValueError):
            for _ in range(60):
                state = srs.review(state, ReviewInput(grade=5), self.clock)

    def test_complete_learning_progression(self):
        state = srs.initial_state(FIXED)
        intervals = []
        for _ in range(4):
            state = srs.review(state, ReviewInput(grade=4), self.clock)
            intervals.append(state.interval)
        self.assertEqual(intervals, [1, 6, 15, 38])
        self.assertEqual(state.repetition, 4)


# =============================================================================
# State helpers and derived views
# =============================================================================

class SRSStateTests(SimpleTestCase):

    def test_initial_state(self):
        state = srs.initial_state(FIXED)
        self.assertEqual(state, ReviewState(interval=0, repetition=0, ease_factor=2.5, due=FIXED))

    def test_initial_state_from_clock(self):
        state = srs.initial_state(clock=FixedClock(FIXED))
        self.assertEqual(state.due, FIXED)

    def test_reset_state_forgets_progress(self):
        later = FIXED + timedelta(days=40)
        self.assertEqual(srs.reset_state(later), srs.initial_state(later))

    def test_new_state_is_due_immediately(self):
        state = srs.initial_state(FIXED)
        self.assertTrue(srs.is_due(state, FixedClock(FIXED)))

    def test_is_due(self):
        state = make_state(6, 2, 2.5, due=FIXED + timedelta(days=6))
        self.assertFalse(srs.is_due(state, FixedClock(FIXED + timedelta(days=5))))
        self.assertTrue(srs.is_due(state, FixedClock(FIXED + timedelta(days=6))))

    def test_phase(self):
        self.assertEqual(make_state(0, 0, 2.5).phase, ReviewPhase.NEW)
        self.assertEqual(make_state(1, 1, 2.5).phase, ReviewPhase.LEARNING)
        self.assertEqual(make_state(6, 2, 2.5).phase, ReviewPhase.MATURE)
        self.assertEqual(make_state(90, 7, 2.5).phase, ReviewPhase.MATURE)

    def test_phase_follows_failure(self):
        result = srs.review(make_state(90, 7, 2.5), ReviewInput(grade=1), FixedClock(FIXED))
        self.assertEqual(result.phase, ReviewPhase.NEW)

    def test_result_to_state(self):
        result = srs.review(make_state(0, 0, 2.5), ReviewInput(grade=4), FixedClock(FIXED))
        state = result.to_state()
        self.assertIsInstance(state, ReviewState)
        self.assertNotIsInstance(state, srs.ReviewResult)
        self.assertEqual(state.due, result.next_review)

    def test_grade_labels(self):
        self.assertEqual(Grade.EASY.label, 'Perfect')
        self.assertEqual(Grade.BLACKOUT.description, 'Complete blackout, no recognition')
        self.assertEqual(len(Grade.choices), 6)

    def test_grade_passing(self):
        self.assertEqual(
            [g.passing for g in Grade],
            [False, False, False, True, True, True],
        )


class SRSSerializationTests(SimpleTestCase):

    def test_to_dict_is_json_primitives(self):
        data = make_state(6, 2, 2.5).to_dict()
        self.assertEqual(data, {
            'interval': 6,
            'repetition': 2,
            'ease_factor': 2.5,
            'due': '2025-01-01T00:00:00+00:00',
        })
        json.dumps(data)

    def test_result_dict_has_matching_next_review(self):
        result = srs.review(make_state(0, 0, 2.5), ReviewInput(grade=4), FixedClock(FIXED))
        data = result.to_dict()
        self.assertEqual(data['due'], data['next_review'])
        self.assertEqual(data['due'], '2025-01-02T00:00:00+00:00')

    def test_from_dict(self):
        state = ReviewState.from_dict({
            'interval': 15,
            'repetition': 3,
            'ease_factor': 2.5,
            'due': '2025-01-16T00:00:00Z',
        })
        self.assertEqual(state, make_state(15, 3, 2.5, due=FIXED + timedelta(days=15)))

    def test_from_dict_accepts_result_dict(self):
        result = srs.review(make_state(0, 0, 2.5), ReviewInput(grade=4), FixedClock(FIXED))
        self.assertEqual(ReviewState.from_dict(result.to_dict()), result.to_state())

    def test_from_dict_bad_due(self):
        with self.assertRaises(ValueError):
            ReviewState.from_dict({
                'interval': 0, 'repetition': 0, 'ease_factor': 2.5, 'due': 'tomorrow',
            })

    def test_from_dict_naive_due_made_aware(self):
        """A timestamp without an offset is read in the current time zone."""
        state = ReviewState.from_dict({
            'interval': 0, 'repetition': 0, 'ease_factor': 2.5,
            'due': '2025-01-01T00:00:00',
        })
        self.assertTrue(django_timezone.is_aware(state.due))
        self.assertEqual(state.due, FIXED)
        self.assertTrue(srs.is_due(state))

    @override_settings(USE_TZ=False)
    def test_from_dict_naive_due_kept_without_tz(self):
        state = ReviewState.from_dict({
            'interval': 0, 'repetition': 0, 'ease_factor': 2.5,
            'due': '2025-01-01T00:00:00',
        })
        self.assertTrue(django_timezone.is_naive(state.due))

    def test_from_dict_rejects_fractional_counts(self):
        for field in ['interval', 'repetition']:
            data = {'interval': 6, 'repetition': 2, 'ease_factor': 2.5, 'due': '2025-01-01T00:00:00Z'}
            data[field] = 6.9
            with self.assertRaises(ValueError):
                ReviewState.from_dict(data)

    def test_from_dict_rejects_string_values(self):
        for field, value in [('interval', '6'), ('repetition', '2'), ('ease_factor', '2.5')]:
            data = {'interval': 6, 'repetition': 2, 'ease_factor': 2.5, 'due': '2025-01-01T00:00:00Z'}
            data[field] = value
            with self.assertRaises(ValueError):
                ReviewState.from_dict(data)

    def test_from_dict_accepts_whole_floats(self):
        state = ReviewState.from_dict({
            'interval': 6.0, 'repetition': 2.0, 'ease_factor': 3, 'due': '2025-01-01T00:00:00Z',
        })
        self.assertEqual(state, make_state(6, 2, 3.0))
        self.assertIsInstance(state.interval, int)
        self.assertIsInstance(state.ease_factor, float)

    def test_from_dict_missing_field(self):
        with self.assertRaises(KeyError):
            ReviewState.from_dict({'interval': 0, 'repetition': 0, 'due': '2025-01-01'})


# =============================================================================
# Configuration
# =============================================================================

class ConfigTests(SimpleTestCase):

    def test_default_mastery(self):
        self.assertTrue(make_state(60, 5, 2.5).is_mastered)
        self.assertFalse(make_state(60, 5, 2.4).is_mastered)
        self.assertFalse(make_state(15, 4, 2.9).is_mastered)

    @override_settings(SCHEDULING_MASTERED_REPETITIONS=3, SCHEDULING_MASTERED_EASE_FACTOR=2.0)
    def test_mastery_thresholds_from_settings(self):
        self.assertTrue(make_state(15, 3, 2.1).is_mastered)

    @override_settings(SCHEDULING_MASTERED_EASE_FACTOR=1.0)
    def test_ready_rejects_low_ease_threshold(self):
        with self.assertRaises(ImproperlyConfigured):
            apps.get_app_config('scheduling').ready()

    @override_settings(SCHEDULING_MASTERED_REPETITIONS=-1)
    def test_ready_rejects_negative_repetitions(self):
        with self.assertRaises(ImproperlyConfigured):
            apps.get_app_config('scheduling').ready()

    def test_ready_accepts_defaults(self):
        apps.get_app_config('scheduling').ready()
