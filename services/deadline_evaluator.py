"""Deadline evaluator.

Runs once per scheduler tick. For every active goal whose local deadline
passed since the previous tick, makes sure the goal's local date has a
terminal check-in: if the user neither completed nor skipped it, a MISSED
row is written, the current streak drops to 0 and the owner is notified.

The evaluator never reads the clock. The scheduler passes ``now_utc`` and
re-running with the same or an overlapping instant is harmless: a MISSED row
is only ever inserted if no row exists for (goal, date) at write time, and
the streak is only reset when that insert succeeds.
"""
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import CheckInStatus, EvaluationRun, EvaluationRunStatus, EvaluatorCheckpoint
from services import timezone_service as tz_service
from services.checkin_store import CheckInStore, InsertResult
from services.exceptions import (
    BatchEvaluationError,
    GoalConfigurationError,
    NotificationDispatchError,
    TransientStoreError,
)
from services.goal_schedule import InvalidScheduleError, schedule_from_goal
from services.goal_store import GoalStore
from services.notification_service import NotificationService

CHECKPOINT_NAME = 'deadline_evaluator'

# One (goal, local date) to evaluate; plain values so it can cross threads.
# deadline_utc is None for retries of earlier PENDING runs.
DueUnit = namedtuple('DueUnit', ['goal_id', 'user_id', 'title', 'local_date', 'deadline_utc'])


class Outcome:
    MISSED = 'missed'                      # MISSED row written by this run
    HONORED = 'honored'                    # COMPLETED or SKIPPED already there
    ALREADY_RESOLVED = 'already_resolved'  # MISSED already there, or lost the insert race
    FAILED = 'failed'
    NOT_STARTED = 'not_started'            # run was aborted first


class EvaluationSummary:
    """What one evaluator run saw and did. Goal ids are collected per outcome."""

    def __init__(self, now_utc, window_start):
        self.now_utc = now_utc
        self.window_start = window_start
        self.due = []
        self.missed = []
        self.honored = []
        self.already_resolved = []
        self.skipped_resolved = []
        self.failed = []
        self.configuration_errors = []
        self.aborted = False

    def record(self, unit, outcome):
        bucket = {
            Outcome.MISSED: self.missed,
            Outcome.HONORED: self.honored,
            Outcome.ALREADY_RESOLVED: self.already_resolved,
            Outcome.FAILED: self.failed,
        }.get(outcome)
        if bucket is not None:
            bucket.append(unit.goal_id)

    def to_dict(self):
        return {
            'now_utc': self.now_utc.isoformat(),
            'window_start': self.window_start.isoformat(),
            'due': len(self.due),
            'missed': len(self.missed),
            'honored': len(self.honored),
            'already_resolved': len(self.already_resolved),
            'skipped_resolved': len(self.skipped_resolved),
            'failed': list(self.failed),
            'configuration_errors': list(self.configuration_errors),
            'aborted': self.aborted,
        }

    def __repr__(self):
        return (f'<EvaluationSummary due={len(self.due)} missed={len(self.missed)} '
                f'honored={len(self.honored)} failed={len(self.failed)} aborted={self.aborted}>')


class DeadlineEvaluator:

    def __init__(self, app=None, goal_store=None, checkin_store=None, notifier=None,
                 lookback=None, max_catch_up=None, workers=None):
        self.app = app
        self.goal_store = goal_store or GoalStore()
        self.checkin_store = checkin_store or CheckInStore()
        self.notifier = notifier or NotificationService()
        self._lookback = lookback
        self._max_catch_up = max_catch_up
        self._workers = workers

    def _config(self, key, default):
        app = self.app or current_app
        return app.config.get(key, default)

    @property
    def lookback(self) -> timedelta:
        if self._lookback is not None:
            return self._lookback
        return timedelta(minutes=self._config('DEADLINE_LOOKBACK_MINUTES', 15))

    @property
    def max_catch_up(self) -> timedelta:
        if self._max_catch_up is not None:
            return self._max_catch_up
        return timedelta(hours=self._config('DEADLINE_MAX_CATCH_UP_HOURS', 24))

    @property
    def workers(self) -> int:
        if self._workers is not None:
            return self._workers
        return self._config('DEADLINE_EVALUATOR_WORKERS', 4)

    def evaluate(self, now_utc: datetime, should_abort=None) -> EvaluationSummary:
        """Evaluate every goal whose deadline passed in the window ending at ``now_utc``.

        Args:
            now_utc: instant of the scheduler tick; naive values are taken as UTC
            should_abort: optional callable, checked before each goal is started

        Raises:
            BatchEvaluationError: goals or bookkeeping could not be read at all, or
                every due goal date failed (the summary rides along on the error)
        """
        now_utc = tz_service.ensure_utc(now_utc)
        should_abort = should_abort or (lambda: False)

        try:
            window_start = self._window_start(now_utc)
            goals = self.goal_store.list_active_goals_due_around(now_utc, self.lookback)
        except (TransientStoreError, SQLAlchemyError) as e:
            db.session.rollback()
            current_app.logger.error(f'Deadline evaluation at {now_utc.isoformat()} failed: {e}')
            raise BatchEvaluationError(f'Could not start evaluation: {e}') from e

        summary = EvaluationSummary(now_utc, window_start)
        current_app.logger.info(f'Evaluating {len(goals)} active goals for deadlines in '
                                f'({window_start.isoformat()}, {now_utc.isoformat()}]')

        units = self._collect_due_units(goals, window_start, now_utc, summary)
        summary.due = units

        failed_units = []
        for unit, outcome in self._run_units(units, should_abort):
            if outcome == Outcome.NOT_STARTED:
                summary.aborted = True
            elif outcome == Outcome.FAILED:
                failed_units.append(unit)
            summary.record(unit, outcome)

        if summary.aborted:
            current_app.logger.warning(f'Deadline evaluation at {now_utc.isoformat()} aborted; '
                                       f'committed goals stay committed')
        else:
            self._advance_checkpoint(self._checkpoint_target(now_utc, failed_units))

        for goal_id in summary.configuration_errors:
            current_app.logger.error(f'Goal {goal_id} needs manual correction and was not evaluated')

        current_app.logger.info(f'Deadline evaluation finished: {summary.to_dict()}')

        if units and len(failed_units) == len(units):
            raise BatchEvaluationError(
                f'All {len(units)} due goal dates failed at {now_utc.isoformat()}', summary=summary
            )
        return summary

    # -- window ----------------------------------------------------------

    def _window_start(self, now_utc: datetime) -> datetime:
        """Start of the (exclusive) window.

        Normally one lookback before now. When the previous successful run
        ended earlier than that (failed or skipped ticks), reach back to it,
        but never further than max_catch_up.
        """
        window_start = now_utc - self.lookback
        checkpoint = db.session.get(EvaluatorCheckpoint, CHECKPOINT_NAME)
        if checkpoint and checkpoint.last_completed_at:
            last = tz_service.ensure_utc(checkpoint.last_completed_at)
            if last < window_start:
                window_start = max(last, now_utc - self.max_catch_up)
        return window_start

    def _checkpoint_target(self, now_utc: datetime, failed_units) -> datetime:
        """How far the checkpoint may move after a run.

        A failed unit stays inside the next catch-up window by holding the
        checkpoint just short of its deadline, whether or not its PENDING
        bookkeeping row was written.
        """
        deadlines = [unit.deadline_utc for unit in failed_units if unit.deadline_utc is not None]
        if not deadlines:
            return now_utc
        return min(now_utc, min(deadlines) - timedelta(microseconds=1))

    def _advance_checkpoint(self, target_utc: datetime) -> None:
        naive_target = tz_service.to_naive_utc(target_utc)
        try:
            checkpoint = db.session.get(EvaluatorCheckpoint, CHECKPOINT_NAME)
            if checkpoint is None:
                db.session.add(EvaluatorCheckpoint(name=CHECKPOINT_NAME, last_completed_at=naive_target))
            elif checkpoint.last_completed_at < naive_target:
                checkpoint.last_completed_at = naive_target
            db.session.commit()
        except SQLAlchemyError as e:
            # The previous checkpoint stays, so the next window reaches back to it
            db.session.rollback()
            current_app.logger.warning(f'Could not advance evaluator checkpoint: {e}')

    # -- due goals -------------------------------------------------------

    def due_deadlines_for_goal(self, goal, window_start: datetime, now_utc: datetime):
        """(local_date, deadline_utc) pairs of ``goal`` whose deadline fell in (window_start, now_utc] on a scheduled day.

        Raises GoalConfigurationError when the goal's timezone, deadline or
        schedule cannot be interpreted.
        """
        if not goal.deadline_time:
            raise GoalConfigurationError(goal.id, 'deadline time is missing')
        try:
            schedule = schedule_from_goal(goal.frequency_type, goal.frequency_days)
            crossed = tz_service.local_times_crossed(goal.timezone, goal.deadline_time, window_start, now_utc)
        except (InvalidScheduleError, tz_service.UnknownTimezoneError) as e:
            raise GoalConfigurationError(goal.id, str(e)) from e

        return [
            (local_date, instant) for local_date, instant in crossed
            if schedule.is_scheduled(local_date) and goal.is_within_period(local_date)
        ]

    def _collect_due_units(self, goals, window_start, now_utc, summary):
        units = {}
        for goal in goals:
            try:
                for local_date, deadline_utc in self.due_deadlines_for_goal(goal, window_start, now_utc):
                    units[(goal.id, local_date)] = DueUnit(goal.id, goal.user_id, goal.title, local_date, deadline_utc)
            except GoalConfigurationError as e:
                current_app.logger.error(f'Skipping misconfigured goal {goal.id}: {e.message}')
                summary.configuration_errors.append(goal.id)

        goals_by_id = {goal.id: goal for goal in goals}
        try:
            # Earlier failures are retried even after their window has passed
            pending = EvaluationRun.query.filter_by(status=EvaluationRunStatus.PENDING).all()
            for run in pending:
                goal = goals_by_id.get(run.goal_id)
                if goal is None or goal.id in summary.configuration_errors:
                    continue
                units.setdefault((goal.id, run.date), DueUnit(goal.id, goal.user_id, goal.title, run.date, None))

            resolved = set()
            if units:
                goal_ids = {goal_id for goal_id, _ in units}
                rows = EvaluationRun.query.filter(
                    EvaluationRun.goal_id.in_(goal_ids),
                    EvaluationRun.status == EvaluationRunStatus.RESOLVED
                ).with_entities(EvaluationRun.goal_id, EvaluationRun.date).all()
                resolved = {(row.goal_id, row.date) for row in rows}
        except SQLAlchemyError as e:
            # Bookkeeping only saves lookups; evaluate everything instead
            db.session.rollback()
            current_app.logger.warning(f'Could not read evaluation runs, evaluating all due goals: {e}')
            resolved = set()

        due = []
        for key in sorted(units):
            if key in resolved:
                summary.skipped_resolved.append(key[0])
                current_app.logger.debug(f'Goal {key[0]} on {key[1]} already resolved, skipping')
            else:
                due.append(units[key])
        return due

    # -- execution -------------------------------------------------------

    def _run_units(self, units, should_abort):
        if not units:
            return []

        workers = max(1, min(self.workers, len(units)))
        if workers == 1:
            results = []
            for unit in units:
                if should_abort():
                    results.append((unit, Outcome.NOT_STARTED))
                    continue
                results.append((unit, self.evaluate_goal_date(unit)))
            return results

        app = self.app or current_app._get_current_object()

        def run_in_context(unit):
            if should_abort():
                return unit, Outcome.NOT_STARTED
            with app.app_context():
                try:
                    return unit, self.evaluate_goal_date(unit)
                finally:
                    db.session.remove()

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='deadline-evaluator') as executor:
            return list(executor.map(run_in_context, units))

    def evaluate_goal_date(self, unit: DueUnit) -> str:
        """Resolve one (goal, local date). Never raises; failures come back as Outcome.FAILED."""
        try:
            existing = self.checkin_store.find_by_goal_and_date(unit.goal_id, unit.local_date)
            if existing is not None:
                outcome = Outcome.HONORED if existing.status in (CheckInStatus.COMPLETED, CheckInStatus.SKIPPED) \
                    else Outcome.ALREADY_RESOLVED
            else:
                outcome = self._apply_miss(unit)
        except TransientStoreError as e:
            self.checkin_store.rollback()
            current_app.logger.warning(f'Goal {unit.goal_id} on {unit.local_date} not evaluated, will retry: {e}')
            self._mark_run(unit, EvaluationRunStatus.PENDING, Outcome.FAILED, error=str(e))
            return Outcome.FAILED
        except Exception as e:
            self.checkin_store.rollback()
            current_app.logger.error(f'Unexpected error evaluating goal {unit.goal_id} on {unit.local_date}: {e}',
                                     exc_info=True)
            self._mark_run(unit, EvaluationRunStatus.PENDING, Outcome.FAILED, error=str(e))
            return Outcome.FAILED

        self._mark_run(unit, EvaluationRunStatus.RESOLVED, outcome)
        if outcome == Outcome.MISSED:
            self._notify(unit)
        return outcome

    def _apply_miss(self, unit: DueUnit) -> str:
        result = self.checkin_store.insert_if_absent(
            unit.goal_id, unit.user_id, unit.local_date, status=CheckInStatus.MISSED
        )
        if result == InsertResult.ALREADY_EXISTS:
            current_app.logger.info(f'Goal {unit.goal_id} on {unit.local_date} was resolved by another writer')
            return Outcome.ALREADY_RESOLVED

        self.checkin_store.reset_streak(unit.goal_id)
        self.checkin_store.commit()
        current_app.logger.info(f'Goal {unit.goal_id} missed on {unit.local_date}; streak reset')
        return Outcome.MISSED

    def _notify(self, unit: DueUnit) -> None:
        try:
            self.notifier.notify_missed(unit.user_id, unit.goal_id, unit.title, local_date=unit.local_date)
        except NotificationDispatchError as e:
            current_app.logger.error(f'Missed-check-in notification for goal {unit.goal_id} not queued: {e}')
        except Exception as e:
            current_app.logger.error(f'Unexpected notification error for goal {unit.goal_id}: {e}', exc_info=True)

    def _mark_run(self, unit: DueUnit, status: str, outcome: str, error: str = None) -> None:
        """Record the bookkeeping row.

        Losing a RESOLVED row costs a redundant lookup later. Losing a PENDING
        row is covered by the checkpoint, which is held short of the failed
        deadline so the next window includes it again.
        """
        try:
            run = EvaluationRun.query.filter_by(goal_id=unit.goal_id, date=unit.local_date).first()
            if run is None:
                run = EvaluationRun(goal_id=unit.goal_id, date=unit.local_date, attempts=0)
                db.session.add(run)
            run.status = status
            run.outcome = outcome
            run.attempts = (run.attempts or 0) + 1
            run.last_error = error
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.warning(f'Could not record evaluation of goal {unit.goal_id} on {unit.local_date}: {e}')
