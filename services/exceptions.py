"""Service layer exceptions.

Routes translate these into JSON error bodies; the deadline evaluator uses
them to decide whether a failure is per-goal or fatal for the whole run.
"""


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    code = 'INTERNAL_ERROR'
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class TransientStoreError(ServiceError):
    """A read or write against the database failed (timeout, lost connection)."""

    code = 'STORE_UNAVAILABLE'
    status_code = 503


class GoalConfigurationError(ServiceError):
    """A goal carries data the evaluator cannot interpret (timezone, deadline, schedule)."""

    code = 'GOAL_MISCONFIGURED'

    def __init__(self, goal_id, message):
        super().__init__(f'Goal {goal_id}: {message}')
        self.goal_id = goal_id


class BatchEvaluationError(ServiceError):
    """The evaluator could not run at all, or every due goal failed; the scheduler should treat the tick as failed."""

    code = 'EVALUATION_FAILED'

    def __init__(self, message=None, summary=None):
        super().__init__(message)
        self.summary = summary


class NotificationDispatchError(ServiceError):
    """A notification could not be queued or delivered."""

    code = 'NOTIFICATION_FAILED'


class CheckInValidationError(ServiceError):
    code = 'VALIDATION_ERROR'
    status_code = 400


class GoalNotFoundError(ServiceError):
    code = 'NOT_FOUND'
    status_code = 404


class GoalAccessDeniedError(ServiceError):
    code = 'FORBIDDEN'
    status_code = 403


class CheckInConflictError(ServiceError):
    code = 'CONFLICT'
    status_code = 409
