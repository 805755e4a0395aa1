"""Check-in store.

All writes that race with each other go through here. The (goal_id, date)
unique key on check_ins is the only synchronization between evaluator
instances, overlapping ticks and user check-ins: whoever commits the row
first owns the date, and nobody overwrites it afterwards.
"""
from datetime import date
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import CheckIn, CheckInStatus, Goal
from services.exceptions import TransientStoreError


class InsertResult:
    CREATED = 'CREATED'
    ALREADY_EXISTS = 'ALREADY_EXISTS'


class CheckInStore:

    def find_by_goal_and_date(self, goal_id: int, local_date: date) -> Optional[CheckIn]:
        try:
            return CheckIn.query.filter_by(goal_id=goal_id, date=local_date).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Could not read check-in for goal {goal_id} on {local_date}: {e}') from e

    def list_for_goal(self, goal_id: int, limit: int = 30, offset: int = 0) -> List[CheckIn]:
        try:
            return CheckIn.query.filter_by(goal_id=goal_id).order_by(
                CheckIn.date.desc()
            ).offset(offset).limit(limit).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Could not list check-ins for goal {goal_id}: {e}') from e

    def insert_if_absent(self, goal_id: int, user_id: str, local_date: date,
                         status: str = CheckInStatus.MISSED, comment: str = None,
                         proof_url: str = None, client_timestamp=None) -> str:
        """Insert a check-in unless one already exists for (goal_id, local_date).

        The INSERT is flushed immediately, so the database decides absence at
        write time rather than at some earlier read. On a uniqueness violation
        the transaction is rolled back and ALREADY_EXISTS is returned; the
        caller must not assume anything it wrote earlier in the same
        transaction survived. On CREATED nothing is committed yet.
        """
        check_in = CheckIn(
            goal_id=goal_id,
            user_id=user_id,
            date=local_date,
            status=status,
            comment=comment,
            proof_url=proof_url,
            client_timestamp=client_timestamp
        )
        try:
            db.session.add(check_in)
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info(f'Check-in for goal {goal_id} on {local_date} already exists, keeping it')
            return InsertResult.ALREADY_EXISTS
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Could not insert check-in for goal {goal_id} on {local_date}: {e}') from e

        return InsertResult.CREATED

    def reset_streak(self, goal_id: int) -> None:
        """Set current_streak to 0. longest_streak is a high-water mark and stays."""
        try:
            Goal.query.filter_by(id=goal_id).update(
                {Goal.current_streak: 0},
                synchronize_session=False
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Could not reset streak for goal {goal_id}: {e}') from e

    def increment_streak(self, goal_id: int) -> None:
        """Add one to current_streak and lift longest_streak to match if exceeded.

        Done as a single UPDATE so concurrent writers never lose an increment;
        both SET expressions read the pre-update row.
        """
        new_streak = Goal.current_streak + 1
        try:
            Goal.query.filter_by(id=goal_id).update(
                {
                    Goal.current_streak: new_streak,
                    Goal.longest_streak: db.case(
                        (new_streak > Goal.longest_streak, new_streak),
                        else_=Goal.longest_streak
                    ),
                },
                synchronize_session=False
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Could not update streak for goal {goal_id}: {e}') from e

    def commit(self) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientStoreError(f'Commit failed: {e}') from e

    def rollback(self) -> None:
        db.session.rollback()
