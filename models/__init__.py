"""Database models package.

This package contains the SQLAlchemy ORM model definitions for the deadline
service. Each model lives in its own module (goal, check_in, evaluation_run,
notification) and is re-exported here for convenience.
"""

# Re-export model classes from individual modules
from .goal import Goal, FrequencyType  # noqa: F401
from .check_in import CheckIn, CheckInStatus  # noqa: F401
from .evaluation_run import EvaluationRun, EvaluationRunStatus, EvaluatorCheckpoint  # noqa: F401
from .notification import NotificationQueue, NotificationCategory  # noqa: F401

__all__ = [
    "Goal",
    "FrequencyType",
    "CheckIn",
    "CheckInStatus",
    "EvaluationRun",
    "EvaluationRunStatus",
    "EvaluatorCheckpoint",
    "NotificationQueue",
    "NotificationCategory",
]
