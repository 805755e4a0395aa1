"""Notification queue model definition.
Rows are drained by the background processor and handed to the push gateway.
"""
from datetime import datetime
from extensions import db


class NotificationCategory:
    MISSED_CHECK_IN = 'missed_check_in'
    REMINDER = 'reminder'


class NotificationQueue(db.Model):
    __tablename__ = 'notification_queue'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    category = db.Column(db.String(50), nullable=False)  # missed_check_in, reminder
    subject = db.Column(db.String(255), nullable=True)
    message = db.Column(db.Text, nullable=False)

    # One notification per dedupe key, e.g. reminder:<goal>:<date>
    dedupe_key = db.Column(db.String(120), unique=True, nullable=True)

    # Scheduling
    scheduled_for = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Processing status
    status = db.Column(db.String(20), default='pending', nullable=False, index=True)  # pending, processing, sent, failed
    attempts = db.Column(db.Integer, default=0, nullable=False)
    max_attempts = db.Column(db.Integer, default=3, nullable=False)
    last_attempt_at = db.Column(db.DateTime, nullable=True)
    sent_at = db.Column(db.DateTime, nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    # Priority and extra data
    priority = db.Column(db.Integer, default=5, nullable=False)  # 1-10, 1 being highest priority
    extra_data = db.Column(db.JSON, nullable=True)  # goal id, notification type

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'category': self.category,
            'subject': self.subject,
            'message': self.message,
            'dedupe_key': self.dedupe_key,
            'scheduled_for': self.scheduled_for.isoformat() if self.scheduled_for else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'status': self.status,
            'attempts': self.attempts,
            'max_attempts': self.max_attempts,
            'last_attempt_at': self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
            'error_message': self.error_message,
            'priority': self.priority,
            'extra_data': self.extra_data
        }

    def __repr__(self):
        return f'<NotificationQueue {self.id} - {self.category} - {self.status}>'
