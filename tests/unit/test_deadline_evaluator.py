"""
Unit tests for the deadline evaluator.
"""
import pytest
from datetime import date, datetime, time, timedelta
from unittest.mock import Mock, patch
from extensions import db
from models import (
    CheckIn, CheckInStatus, EvaluationRun, EvaluationRunStatus, EvaluatorCheckpoint,
    FrequencyType, Goal, NotificationQueue,
)
from services.checkin_store import CheckInStore
from services.deadline_evaluator import CHECKPOINT_NAME, DeadlineEvaluator, DueUnit, Outcome
from services.exceptions import BatchEvaluationError, NotificationDispatchError, TransientStoreError
from services.goal_store import GoalStore
from tests.conftest import utc

TODAY = date(2024, 7, 15)  # a Monday


def rows_for(goal_id):
    return CheckIn.query.filter_by(goal_id=goal_id).order_by(CheckIn.date).all()


def reload(goal):
    return db.session.get(Goal, goal.id)


@pytest.fixture
def evaluator(app):
    return DeadlineEvaluator(app=app, workers=1)


class TestScenarios:
    """The three basic outcomes for a daily 20:00 UTC goal."""

    def test_simple_miss(self, evaluator, test_goal):
        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        rows = rows_for(test_goal.id)
        assert len(rows) == 1
        assert rows[0].status == CheckInStatus.MISSED
        assert rows[0].date == TODAY
        assert rows[0].user_id == test_goal.user_id
        assert reload(test_goal).current_streak == 0
        assert summary.missed == [test_goal.id]

    def test_honored_goal(self, evaluator, test_goal, make_check_in):
        make_check_in(test_goal, TODAY, status=CheckInStatus.COMPLETED)

        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        rows = rows_for(test_goal.id)
        assert [r.status for r in rows] == [CheckInStatus.COMPLETED]
        assert reload(test_goal).current_streak == 5
        assert summary.honored == [test_goal.id]
        assert summary.missed == []

    def test_skipped_goal_is_honored(self, evaluator, test_goal, make_check_in):
        make_check_in(test_goal, TODAY, status=CheckInStatus.SKIPPED)

        evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert [r.status for r in rows_for(test_goal.id)] == [CheckInStatus.SKIPPED]
        assert reload(test_goal).current_streak == 5

    def test_not_yet_due(self, evaluator, test_goal):
        summary = evaluator.evaluate(utc(2024, 7, 15, 19, 0))

        assert rows_for(test_goal.id) == []
        assert reload(test_goal).current_streak == 5
        assert summary.due == []

    def test_not_yet_due_then_due_next_tick(self, evaluator, test_goal):
        evaluator.evaluate(utc(2024, 7, 15, 19, 0))
        evaluator.evaluate(utc(2024, 7, 15, 20, 10))

        assert [r.status for r in rows_for(test_goal.id)] == [CheckInStatus.MISSED]

    def test_archived_goal_is_never_evaluated(self, evaluator, make_goal):
        goal = make_goal(is_archived=True)
        evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert rows_for(goal.id) == []
        assert reload(goal).current_streak == 5


class TestIdempotency:

    def test_same_tick_twice(self, evaluator, test_goal):
        now = utc(2024, 7, 15, 20, 5)
        first = evaluator.evaluate(now)
        second = evaluator.evaluate(now)

        assert len(rows_for(test_goal.id)) == 1
        assert first.missed == [test_goal.id]
        assert second.missed == []
        assert second.skipped_resolved == [test_goal.id]

    def test_streak_reset_happens_once(self, app, test_goal):
        checkin_store = CheckInStore()
        evaluator = DeadlineEvaluator(app=app, checkin_store=checkin_store, workers=1)

        with patch.object(checkin_store, 'reset_streak', wraps=checkin_store.reset_streak) as reset:
            evaluator.evaluate(utc(2024, 7, 15, 20, 5))
            evaluator.evaluate(utc(2024, 7, 15, 20, 5))
            evaluator.evaluate(utc(2024, 7, 15, 20, 14))

        assert reset.call_count == 1
        assert len(rows_for(test_goal.id)) == 1

    def test_lost_bookkeeping_does_not_double_insert(self, evaluator, test_goal):
        now = utc(2024, 7, 15, 20, 5)
        evaluator.evaluate(now)
        EvaluationRun.query.delete()
        db.session.commit()

        summary = evaluator.evaluate(now)

        assert len(rows_for(test_goal.id)) == 1
        assert summary.already_resolved == [test_goal.id]
        assert summary.missed == []

    def test_overlapping_ticks(self, evaluator, test_goal):
        evaluator.evaluate(utc(2024, 7, 15, 20, 5))
        evaluator.evaluate(utc(2024, 7, 15, 20, 1))
        evaluator.evaluate(utc(2024, 7, 15, 20, 12))

        assert len(rows_for(test_goal.id)) == 1

    def test_one_notification_per_miss(self, evaluator, test_goal):
        now = utc(2024, 7, 15, 20, 5)
        evaluator.evaluate(now)
        evaluator.evaluate(now)

        notifications = NotificationQueue.query.filter_by(user_id=test_goal.user_id).all()
        assert len(notifications) == 1
        assert notifications[0].category == 'missed_check_in'
        assert notifications[0].extra_data['goal_id'] == test_goal.id
        assert 'Evening walk' in notifications[0].message


class TestTimezones:

    def test_chicago_deadline_not_due_in_the_afternoon(self, evaluator, make_goal):
        goal = make_goal(timezone='America/Chicago', deadline_time=time(23, 59))

        # 23:30 UTC is 18:30 in Chicago
        evaluator.evaluate(utc(2024, 7, 15, 23, 30))

        assert rows_for(goal.id) == []

    def test_chicago_deadline_missed_after_local_midnight(self, evaluator, make_goal):
        goal = make_goal(timezone='America/Chicago', deadline_time=time(23, 59))

        # 05:05 UTC on the 16th is 00:05 in Chicago
        evaluator.evaluate(utc(2024, 7, 16, 5, 5))
        evaluator.evaluate(utc(2024, 7, 16, 5, 5))

        rows = rows_for(goal.id)
        assert len(rows) == 1
        assert rows[0].date == TODAY
        assert rows[0].status == CheckInStatus.MISSED

    def test_deadline_on_dst_day_is_local(self, evaluator, make_goal):
        goal = make_goal(timezone='America/Chicago', deadline_time=time(23, 59))

        # On 2024-03-10 23:59 CDT is 04:59 UTC; the winter offset would say 05:59
        evaluator.evaluate(utc(2024, 3, 11, 5, 0))

        rows = rows_for(goal.id)
        assert [r.date for r in rows] == [date(2024, 3, 10)]

    def test_far_east_goal(self, evaluator, make_goal):
        goal = make_goal(timezone='Asia/Tokyo', deadline_time=time(22, 30))

        # 13:30 UTC is 22:30 in Tokyo
        evaluator.evaluate(utc(2024, 7, 15, 13, 40))

        assert [r.date for r in rows_for(goal.id)] == [TODAY]


class TestScheduleFiltering:

    def test_specific_days_skip_unlisted_weekday(self, evaluator, make_goal):
        goal = make_goal(frequency_type=FrequencyType.SPECIFIC_DAYS, frequency_days=[1, 3])

        # 2024-07-16 is a Tuesday
        summary = evaluator.evaluate(utc(2024, 7, 16, 20, 5))

        assert rows_for(goal.id) == []
        assert EvaluationRun.query.filter_by(goal_id=goal.id).count() == 0
        assert summary.due == []
        assert reload(goal).current_streak == 5

    def test_specific_days_listed_weekday(self, evaluator, make_goal):
        goal = make_goal(frequency_type=FrequencyType.SPECIFIC_DAYS, frequency_days=[1, 3])

        evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert [r.status for r in rows_for(goal.id)] == [CheckInStatus.MISSED]

    def test_weekly_goal_only_on_its_day(self, evaluator, make_goal):
        goal = make_goal(frequency_type=FrequencyType.WEEKLY, frequency_days=[3])

        evaluator.evaluate(utc(2024, 7, 16, 20, 5))
        assert rows_for(goal.id) == []

        evaluator.evaluate(utc(2024, 7, 17, 20, 5))
        assert [r.date for r in rows_for(goal.id)] == [date(2024, 7, 17)]

    def test_dates_outside_goal_period(self, evaluator, make_goal):
        not_started = make_goal(title='Later', start_date=date(2024, 7, 16))
        finished = make_goal(title='Earlier', end_date=date(2024, 7, 14))

        evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert rows_for(not_started.id) == []
        assert rows_for(finished.id) == []


class TestStreaks:

    def test_longest_streak_untouched(self, evaluator, make_goal):
        goal = make_goal(current_streak=7, longest_streak=7)
        evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        goal = reload(goal)
        assert goal.current_streak == 0
        assert goal.longest_streak == 7

    def test_zero_streak_stays_zero(self, evaluator, make_goal):
        goal = make_goal(current_streak=0, longest_streak=2)
        evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        goal = reload(goal)
        assert goal.current_streak == 0
        assert goal.longest_streak == 2


class TestRaceResolution:

    def test_user_check_in_committed_after_read_wins(self, app, test_goal, make_check_in):
        """The evaluator read no row, then the user's COMPLETED landed before the insert."""
        checkin_store = CheckInStore()
        evaluator = DeadlineEvaluator(app=app, checkin_store=checkin_store, workers=1)
        make_check_in(test_goal, TODAY, status=CheckInStatus.COMPLETED)

        with patch.object(checkin_store, 'find_by_goal_and_date', return_value=None):
            summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        rows = rows_for(test_goal.id)
        assert len(rows) == 1
        assert rows[0].status == CheckInStatus.COMPLETED
        assert reload(test_goal).current_streak == 5
        assert summary.already_resolved == [test_goal.id]
        assert NotificationQueue.query.count() == 0

    def test_missed_row_is_never_overwritten(self, evaluator, test_goal, make_check_in):
        make_check_in(test_goal, TODAY, status=CheckInStatus.MISSED)
        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert [r.status for r in rows_for(test_goal.id)] == [CheckInStatus.MISSED]
        assert summary.already_resolved == [test_goal.id]
        assert reload(test_goal).current_streak == 5


class TestFailures:

    def test_misconfigured_goal_does_not_block_others(self, evaluator, make_goal):
        bad_tz = make_goal(title='Bad zone', timezone='Mars/Base')
        bad_days = make_goal(title='Bad days', frequency_type=FrequencyType.SPECIFIC_DAYS, frequency_days=[])
        bad_type = make_goal(title='Bad type', frequency_type='MONTHLY')
        good = make_goal(title='Good')

        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert sorted(summary.configuration_errors) == sorted([bad_tz.id, bad_days.id, bad_type.id])
        assert summary.missed == [good.id]
        assert rows_for(bad_tz.id) == []

    def test_transient_error_skips_goal_and_marks_pending(self, app, make_goal):
        first = make_goal(title='Flaky')
        second = make_goal(title='Fine')
        checkin_store = CheckInStore()
        evaluator = DeadlineEvaluator(app=app, checkin_store=checkin_store, workers=1)
        real_find = checkin_store.find_by_goal_and_date

        def flaky_find(goal_id, local_date):
            if goal_id == first.id:
                raise TransientStoreError('read timeout')
            return real_find(goal_id, local_date)

        with patch.object(checkin_store, 'find_by_goal_and_date', side_effect=flaky_find):
            summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert summary.failed == [first.id]
        assert summary.missed == [second.id]
        run = EvaluationRun.query.filter_by(goal_id=first.id).one()
        assert run.status == EvaluationRunStatus.PENDING
        assert 'read timeout' in run.last_error

    def test_pending_goal_retried_after_window_moves_on(self, app, test_goal):
        checkin_store = CheckInStore()
        evaluator = DeadlineEvaluator(app=app, checkin_store=checkin_store, workers=1)

        with patch.object(checkin_store, 'commit', side_effect=TransientStoreError('commit lost')):
            with pytest.raises(BatchEvaluationError):
                evaluator.evaluate(utc(2024, 7, 15, 20, 5))
        assert rows_for(test_goal.id) == []
        assert reload(test_goal).current_streak == 5

        # Two hours later the deadline is long out of the lookback window
        summary = evaluator.evaluate(utc(2024, 7, 15, 22, 5))

        assert summary.missed == [test_goal.id]
        assert [r.status for r in rows_for(test_goal.id)] == [CheckInStatus.MISSED]
        run = EvaluationRun.query.filter_by(goal_id=test_goal.id).one()
        assert run.status == EvaluationRunStatus.RESOLVED
        assert run.attempts == 2

    def test_goal_listing_failure_fails_the_batch(self, app, test_goal):
        goal_store = Mock(spec=GoalStore)
        goal_store.list_active_goals_due_around.side_effect = TransientStoreError('db down')
        evaluator = DeadlineEvaluator(app=app, goal_store=goal_store, workers=1)

        with pytest.raises(BatchEvaluationError):
            evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert db.session.get(EvaluatorCheckpoint, CHECKPOINT_NAME) is None

    def test_every_unit_failing_fails_the_batch(self, app, make_goal):
        goals = [make_goal(title=f'Goal {i}') for i in range(3)]
        checkin_store = CheckInStore()
        evaluator = DeadlineEvaluator(app=app, checkin_store=checkin_store, workers=1)

        with patch.object(checkin_store, 'find_by_goal_and_date', side_effect=TransientStoreError('db down')):
            with pytest.raises(BatchEvaluationError) as excinfo:
                evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert sorted(excinfo.value.summary.failed) == sorted(g.id for g in goals)
        # Held just short of the failed deadlines, never at the tick
        checkpoint = db.session.get(EvaluatorCheckpoint, CHECKPOINT_NAME)
        assert checkpoint.last_completed_at == datetime(2024, 7, 15, 19, 59, 59, 999999)

    def test_failed_unit_without_bookkeeping_is_retried(self, app, make_goal):
        flaky = make_goal(title='Flaky')
        steady = make_goal(title='Steady')
        checkin_store = CheckInStore()
        evaluator = DeadlineEvaluator(app=app, checkin_store=checkin_store, workers=1)
        real_find = checkin_store.find_by_goal_and_date

        def flaky_find(goal_id, local_date):
            if goal_id == flaky.id:
                raise TransientStoreError('read timeout')
            return real_find(goal_id, local_date)

        # The PENDING row is lost along with the check-in read
        with patch.object(checkin_store, 'find_by_goal_and_date', side_effect=flaky_find), \
                patch.object(evaluator, '_mark_run'):
            summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        assert summary.failed == [flaky.id]
        assert summary.missed == [steady.id]
        assert EvaluationRun.query.count() == 0

        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 20))

        assert summary.missed == [flaky.id]
        assert summary.already_resolved == [steady.id]
        assert [r.status for r in rows_for(flaky.id)] == [CheckInStatus.MISSED]
        assert reload(flaky).current_streak == 0
        checkpoint = db.session.get(EvaluatorCheckpoint, CHECKPOINT_NAME)
        assert checkpoint.last_completed_at == datetime(2024, 7, 15, 20, 20)

    def test_notification_failure_keeps_the_miss(self, app, test_goal):
        notifier = Mock()
        notifier.notify_missed.side_effect = NotificationDispatchError('queue down')
        evaluator = DeadlineEvaluator(app=app, notifier=notifier, workers=1)

        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        notifier.notify_missed.assert_called_once_with(
            test_goal.user_id, test_goal.id, 'Evening walk', local_date=TODAY
        )
        assert summary.missed == [test_goal.id]
        assert [r.status for r in rows_for(test_goal.id)] == [CheckInStatus.MISSED]
        assert reload(test_goal).current_streak == 0


class TestWindowAndCheckpoint:

    def test_checkpoint_advances(self, evaluator, test_goal):
        evaluator.evaluate(utc(2024, 7, 15, 20, 5))

        checkpoint = db.session.get(EvaluatorCheckpoint, CHECKPOINT_NAME)
        assert checkpoint.last_completed_at == utc(2024, 7, 15, 20, 5).replace(tzinfo=None)

    def test_checkpoint_never_moves_backwards(self, evaluator, test_goal):
        evaluator.evaluate(utc(2024, 7, 15, 20, 5))
        evaluator.evaluate(utc(2024, 7, 15, 19, 0))

        checkpoint = db.session.get(EvaluatorCheckpoint, CHECKPOINT_NAME)
        assert checkpoint.last_completed_at == utc(2024, 7, 15, 20, 5).replace(tzinfo=None)

    def test_failed_ticks_are_caught_up(self, evaluator, test_goal):
        evaluator.evaluate(utc(2024, 7, 15, 19, 30))
        # Ticks between 19:45 and 21:45 never ran
        summary = evaluator.evaluate(utc(2024, 7, 15, 22, 0))

        assert summary.window_start == utc(2024, 7, 15, 19, 30)
        assert summary.missed == [test_goal.id]

    def test_catch_up_is_capped(self, app, test_goal):
        evaluator = DeadlineEvaluator(app=app, workers=1, max_catch_up=timedelta(hours=1))
        evaluator.evaluate(utc(2024, 7, 15, 12, 0))

        summary = evaluator.evaluate(utc(2024, 7, 15, 22, 0))

        assert summary.window_start == utc(2024, 7, 15, 21, 0)
        assert rows_for(test_goal.id) == []

    def test_first_run_uses_lookback(self, evaluator):
        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5))
        assert summary.window_start == utc(2024, 7, 15, 19, 50)

    def test_naive_now_is_utc(self, evaluator, test_goal):
        summary = evaluator.evaluate(datetime(2024, 7, 15, 20, 5))
        assert summary.missed == [test_goal.id]


class TestCancellation:

    def test_abort_before_start(self, evaluator, make_goal):
        goals = [make_goal(title=f'Goal {i}') for i in range(3)]

        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5), should_abort=lambda: True)

        assert summary.aborted is True
        assert summary.missed == []
        assert all(rows_for(g.id) == [] for g in goals)
        assert db.session.get(EvaluatorCheckpoint, CHECKPOINT_NAME) is None

    def test_abort_midway_keeps_committed_work(self, evaluator, make_goal):
        goals = [make_goal(title=f'Goal {i}') for i in range(3)]
        calls = {'count': 0}

        def abort_after_first():
            calls['count'] += 1
            return calls['count'] > 1

        summary = evaluator.evaluate(utc(2024, 7, 15, 20, 5), should_abort=abort_after_first)

        assert summary.aborted is True
        assert summary.missed == [goals[0].id]
        assert len(rows_for(goals[0].id)) == 1

        # The next tick picks up the rest and skips the committed one
        rest = evaluator.evaluate(utc(2024, 7, 15, 20, 10))
        assert sorted(rest.missed) == sorted([goals[1].id, goals[2].id])
        assert rest.skipped_resolved == [goals[0].id]


class TestEvaluateGoalDate:

    def test_unexpected_error_is_contained(self, app, test_goal):
        checkin_store = CheckInStore()
        evaluator = DeadlineEvaluator(app=app, checkin_store=checkin_store, workers=1)
        unit = DueUnit(test_goal.id, test_goal.user_id, test_goal.title, TODAY, utc(2024, 7, 15, 20, 0))

        with patch.object(checkin_store, 'find_by_goal_and_date', side_effect=RuntimeError('boom')):
            assert evaluator.evaluate_goal_date(unit) == Outcome.FAILED

        run = EvaluationRun.query.filter_by(goal_id=test_goal.id).one()
        assert run.outcome == Outcome.FAILED
        assert run.status == EvaluationRunStatus.PENDING
        assert 'boom' in run.last_error
