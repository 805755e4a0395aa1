"""Notification Service.
Queues missed-check-in and reminder notifications and drains the queue
through the push dispatcher.
"""
from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from extensions import db
from models.notification import NotificationQueue, NotificationCategory
from services.exceptions import NotificationDispatchError
from services.notification_dispatcher import NotificationDispatcher
from services.timezone_service import to_naive_utc


class NotificationService:

    def __init__(self, dispatcher=None):
        self.dispatcher = dispatcher or NotificationDispatcher()

    def queue_notification(self, user_id, category, subject, message, priority=5,
                           extra_data=None, scheduled_for=None, dedupe_key=None):
        """Queue a notification for sending.

        Returns the queued row, or None when a row with the same dedupe key
        already exists. Raises NotificationDispatchError when the queue
        cannot be written.
        """
        notification = NotificationQueue(
            user_id=user_id,
            category=category,
            subject=subject,
            message=message,
            priority=priority,
            extra_data=extra_data,
            dedupe_key=dedupe_key,
            max_attempts=current_app.config.get('NOTIFICATION_MAX_RETRIES', 3),
            scheduled_for=to_naive_utc(scheduled_for) if scheduled_for else datetime.utcnow()
        )

        try:
            db.session.add(notification)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info(f'Notification {dedupe_key} already queued for user {user_id}')
            return None
        except SQLAlchemyError as e:
            db.session.rollback()
            raise NotificationDispatchError(f'Could not queue {category} notification for user {user_id}: {e}') from e

        current_app.logger.info(f'Queued {category} notification for user {user_id}')
        return notification

    def notify_missed(self, user_id, goal_id, goal_title, local_date=None):
        """Tell the goal owner they missed a check-in. Enqueue only; delivery happens later."""
        dedupe_key = f'missed:{goal_id}:{local_date.isoformat()}' if local_date else None
        return self.queue_notification(
            user_id=user_id,
            category=NotificationCategory.MISSED_CHECK_IN,
            subject='😢 Missed Check-in',
            message=f'You missed your check-in for "{goal_title}"',
            priority=2,
            extra_data={'type': 'missed', 'goal_id': goal_id, 'goal_title': goal_title},
            dedupe_key=dedupe_key
        )

    def send_reminder(self, user_id, goal_id, goal_title, local_date):
        return self.queue_notification(
            user_id=user_id,
            category=NotificationCategory.REMINDER,
            subject='⏰ Reminder',
            message=f"Don't forget: {goal_title}",
            priority=4,
            extra_data={'type': 'reminder', 'goal_id': goal_id, 'goal_title': goal_title},
            dedupe_key=f'reminder:{goal_id}:{local_date.isoformat()}'
        )

    def process_notification_queue(self, now_utc=None, limit=None):
        """Process pending notifications in the queue"""
        now = to_naive_utc(now_utc) if now_utc else datetime.utcnow()
        limit = limit or current_app.config.get('NOTIFICATION_BATCH_SIZE', 10)

        try:
            # Get pending notifications ordered by priority and scheduled time
            notifications = NotificationQueue.query.filter(
                NotificationQueue.status == 'pending',
                NotificationQueue.scheduled_for <= now,
                NotificationQueue.attempts < NotificationQueue.max_attempts
            ).order_by(
                NotificationQueue.priority.asc(),
                NotificationQueue.scheduled_for.asc()
            ).limit(limit).all()

            processed = 0
            for notification in notifications:
                success = self._send_notification(notification)
                processed += 1
                notification.attempts += 1
                notification.last_attempt_at = now

                if success:
                    notification.status = 'sent'
                    notification.sent_at = now
                    notification.error_message = None
                elif notification.attempts >= notification.max_attempts:
                    notification.status = 'failed'
                    notification.error_message = 'Delivery failed after maximum attempts'
                    current_app.logger.warning(f'Notification {notification.id} failed permanently')
                else:
                    # Reschedule with exponential backoff
                    backoff_minutes = 2 ** notification.attempts
                    notification.scheduled_for = now + timedelta(minutes=backoff_minutes)
                    notification.status = 'pending'
                    notification.error_message = 'Delivery failed, retry scheduled'

            db.session.commit()
            if processed:
                current_app.logger.info(f'Processed {processed} notifications from queue')
            return processed

        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f'Error processing notification queue: {e}')
            return 0

    def _send_notification(self, notification):
        """Send a single notification through the dispatcher"""
        try:
            notification.status = 'processing'
            db.session.commit()
            return self.dispatcher.dispatch(notification)
        except Exception as e:
            current_app.logger.error(f'Error sending notification {notification.id}: {e}')
            return False

