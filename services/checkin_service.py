"""Check-in service.

User-initiated check-ins (COMPLETED or SKIPPED) for today's local date.
The write shares the (goal, date) unique key with the deadline evaluator, so
a user check-in and a MISSED determination can never both land.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from flask import current_app

from models import CheckIn, CheckInStatus, Goal
from services import timezone_service as tz_service
from services.checkin_store import CheckInStore, InsertResult
from services.exceptions import (
    CheckInConflictError,
    CheckInValidationError,
    GoalAccessDeniedError,
    GoalConfigurationError,
    GoalNotFoundError,
)
from services.goal_store import GoalStore

MAX_COMMENT_LENGTH = 500


class CheckInService:

    def __init__(self, goal_store=None, checkin_store=None):
        self.goal_store = goal_store or GoalStore()
        self.checkin_store = checkin_store or CheckInStore()

    def _owned_goal(self, goal_id: int, user_id: str) -> Goal:
        goal = self.goal_store.get_goal(goal_id)
        if goal is None:
            raise GoalNotFoundError('Goal not found')
        if goal.user_id != user_id:
            raise GoalAccessDeniedError('You can only check in to your own goals')
        return goal

    def record_check_in(self, goal_id: int, user_id: str, now_utc: datetime,
                        status: str = CheckInStatus.COMPLETED, comment: Optional[str] = None,
                        proof_url: Optional[str] = None,
                        client_timestamp: Optional[datetime] = None) -> Dict:
        """Record today's check-in for the goal owner.

        Returns the check-in as a dict with the goal's streaks after the write.
        """
        status = status or CheckInStatus.COMPLETED
        if status not in CheckInStatus.USER_SETTABLE:
            raise CheckInValidationError('Invalid status. Use COMPLETED or SKIPPED')
        if comment is not None and not isinstance(comment, str):
            raise CheckInValidationError('Comment must be text')
        if proof_url is not None and not isinstance(proof_url, str):
            raise CheckInValidationError('Proof URL must be text')

        now_utc = tz_service.ensure_utc(now_utc)
        goal = self._owned_goal(goal_id, user_id)

        if goal.is_archived:
            raise CheckInValidationError('Cannot check in to an archived goal')
        if goal.requires_proof and status == CheckInStatus.COMPLETED and not proof_url:
            raise CheckInValidationError('This goal requires photo proof')

        comment = (comment or '').strip() or None
        if comment and len(comment) > MAX_COMMENT_LENGTH:
            raise CheckInValidationError(f'Comment must be at most {MAX_COMMENT_LENGTH} characters')

        if client_timestamp is not None:
            client_timestamp = tz_service.ensure_utc(client_timestamp)
            max_age = timedelta(hours=current_app.config.get('CHECKIN_MAX_CLIENT_TIMESTAMP_AGE_HOURS', 6))
            if client_timestamp < now_utc - max_age:
                raise CheckInValidationError(
                    f'Client timestamp is too old (max {int(max_age.total_seconds() // 3600)} hours)'
                )

        try:
            today = tz_service.get_local_date(goal.timezone, now_utc)
        except tz_service.UnknownTimezoneError as e:
            current_app.logger.error(f'Goal {goal.id} has invalid timezone {goal.timezone!r}')
            raise GoalConfigurationError(goal.id, str(e)) from e

        result = self.checkin_store.insert_if_absent(
            goal.id, user_id, today,
            status=status,
            comment=comment,
            proof_url=proof_url,
            client_timestamp=tz_service.to_naive_utc(client_timestamp) if client_timestamp else None
        )
        if result == InsertResult.ALREADY_EXISTS:
            raise CheckInConflictError('Already checked in for today')

        if status == CheckInStatus.COMPLETED:
            self.checkin_store.increment_streak(goal.id)
        self.checkin_store.commit()

        check_in = self.checkin_store.find_by_goal_and_date(goal.id, today)
        goal = self.goal_store.get_goal(goal.id)
        current_app.logger.info(f'User {user_id} checked in {status} for goal {goal.id} on {today}')

        data = check_in.to_dict()
        data['current_streak'] = goal.current_streak
        data['longest_streak'] = goal.longest_streak
        return data

    def today_status(self, goal_id: int, user_id: str, now_utc: datetime) -> Dict:
        goal = self._owned_goal(goal_id, user_id)
        today = tz_service.get_local_date(goal.timezone, now_utc)
        check_in = self.checkin_store.find_by_goal_and_date(goal.id, today)

        return {
            'date': today.isoformat(),
            'checked_in': check_in is not None,
            'check_in': {
                'id': check_in.id,
                'status': check_in.status,
                'created_at': check_in.created_at.isoformat() if check_in.created_at else None,
            } if check_in else None,
        }

    def list_check_ins(self, goal_id: int, user_id: str, limit: int = 30, offset: int = 0) -> List[CheckIn]:
        """Check-ins for a goal, newest first. Visible to the owner and members of the goal's pod."""
        goal = self.goal_store.get_goal(goal_id)
        if goal is None:
            raise GoalNotFoundError('Goal not found')
        if goal.user_id != user_id and not self._is_pod_member(goal, user_id):
            raise GoalAccessDeniedError('You do not have access to this goal')

        limit = max(1, min(limit, 100))
        offset = max(0, offset)
        return self.checkin_store.list_for_goal(goal.id, limit=limit, offset=offset)

    def _is_pod_member(self, goal: Goal, user_id: str) -> bool:
        # Pod membership lives in the pod service; a member is anyone who owns a goal in the same pod
        return Goal.query.filter_by(pod_id=goal.pod_id, user_id=user_id).first() is not None
