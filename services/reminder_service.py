"""Reminder service.

Sends a pre-deadline nudge for goals with a reminder time, on scheduled
days only, and only while the user has not checked in for the local date.
"""
from datetime import datetime, timedelta

from flask import current_app

from services import timezone_service as tz_service
from services.checkin_store import CheckInStore
from services.exceptions import NotificationDispatchError, TransientStoreError
from services.goal_schedule import InvalidScheduleError, schedule_from_goal
from services.goal_store import GoalStore
from services.notification_service import NotificationService


class ReminderService:

    def __init__(self, goal_store=None, checkin_store=None, notifier=None):
        self.goal_store = goal_store or GoalStore()
        self.checkin_store = checkin_store or CheckInStore()
        self.notifier = notifier or NotificationService()

    def send_due_reminders(self, now_utc: datetime, lookback: timedelta = None) -> int:
        """Queue reminders whose local reminder time fell in (now_utc - lookback, now_utc]."""
        now_utc = tz_service.ensure_utc(now_utc)
        if lookback is None:
            lookback = timedelta(minutes=current_app.config.get('DEADLINE_EVALUATION_INTERVAL_MINUTES', 15))
        window_start = now_utc - lookback

        queued = 0
        for goal in self.goal_store.list_active_goals_with_reminders():
            try:
                schedule = schedule_from_goal(goal.frequency_type, goal.frequency_days)
                crossed = tz_service.local_times_crossed(goal.timezone, goal.reminder_time, window_start, now_utc)
            except (InvalidScheduleError, tz_service.UnknownTimezoneError) as e:
                current_app.logger.error(f'Skipping reminder for misconfigured goal {goal.id}: {e}')
                continue

            for local_date, _ in crossed:
                if not schedule.is_scheduled(local_date) or not goal.is_within_period(local_date):
                    continue
                try:
                    if self.checkin_store.find_by_goal_and_date(goal.id, local_date) is not None:
                        current_app.logger.debug(f'Goal {goal.id} already checked in on {local_date}, no reminder')
                        continue
                    if self.notifier.send_reminder(goal.user_id, goal.id, goal.title, local_date):
                        queued += 1
                except (TransientStoreError, NotificationDispatchError) as e:
                    current_app.logger.warning(f'Reminder for goal {goal.id} on {local_date} not queued: {e}')

        if queued:
            current_app.logger.info(f'Queued {queued} reminders')
        return queued
