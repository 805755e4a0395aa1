"""Business logic service layer.

This package groups the deadline evaluator, the stores it reads and writes
through, and the supporting check-in, reminder and notification services.
Keeping business logic out of route handlers and the scheduler makes the
evaluation logic easy to test with an explicit clock.
"""

from services.goal_store import GoalStore  # noqa: F401
from services.checkin_store import CheckInStore, InsertResult  # noqa: F401
from services.deadline_evaluator import DeadlineEvaluator, EvaluationSummary  # noqa: F401
from services.checkin_service import CheckInService  # noqa: F401
from services.reminder_service import ReminderService  # noqa: F401
from services.notification_service import NotificationService  # noqa: F401


__all__ = [
    "GoalStore",
    "CheckInStore",
    "InsertResult",
    "DeadlineEvaluator",
    "EvaluationSummary",
    "CheckInService",
    "ReminderService",
    "NotificationService",
]
