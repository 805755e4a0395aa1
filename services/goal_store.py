"""Goal store.

Read access to goals for the deadline evaluator and the reminder job.
Database failures surface as TransientStoreError so callers can tell a
flaky connection apart from a programming error.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Goal
from services.exceptions import TransientStoreError


class GoalStore:

    def list_active_goals(self) -> List[Goal]:
        """Every goal that is not archived, oldest first."""
        try:
            return Goal.query.filter_by(is_archived=False).order_by(Goal.id.asc()).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Could not list active goals: {e}') from e

    def list_active_goals_due_around(self, now_utc: datetime, lookback: timedelta) -> List[Goal]:
        """Active goals that may have a deadline inside the lookback window.

        Deadlines are wall-clock times in each goal's own zone, so the store
        cannot narrow this down in SQL without per-zone arithmetic; it returns
        every active goal and the evaluator does the timezone-aware filtering.
        """
        return self.list_active_goals()

    def list_active_goals_with_reminders(self) -> List[Goal]:
        try:
            return Goal.query.filter(
                Goal.is_archived.is_(False),
                Goal.reminder_time.isnot(None)
            ).order_by(Goal.id.asc()).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Could not list goals with reminders: {e}') from e

    def get_goal(self, goal_id: int) -> Optional[Goal]:
        try:
            return db.session.get(Goal, goal_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Could not load goal {goal_id}: {e}') from e
