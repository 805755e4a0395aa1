"""Goal model definition.
Defines the Goal ORM model: a recurring commitment with a schedule and a
daily deadline, evaluated in the goal's own timezone.
"""
from datetime import datetime, date, time
from extensions import db


class FrequencyType:
    DAILY = 'DAILY'
    WEEKLY = 'WEEKLY'
    SPECIFIC_DAYS = 'SPECIFIC_DAYS'

    ALL = (DAILY, WEEKLY, SPECIFIC_DAYS)


class Goal(db.Model):
    __tablename__ = 'goals'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    pod_id = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    # Schedule; frequency_days uses 0=Sunday .. 6=Saturday
    frequency_type = db.Column(db.String(20), nullable=False, default=FrequencyType.DAILY)
    frequency_days = db.Column(db.JSON, nullable=False, default=list)
    deadline_time = db.Column(db.Time, nullable=False, default=time(23, 59))
    reminder_time = db.Column(db.Time)
    timezone = db.Column(db.String(50), nullable=False, default='UTC')

    requires_proof = db.Column(db.Boolean, nullable=False, default=False)
    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Goal period
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)

    # Streaks
    current_streak = db.Column(db.Integer, nullable=False, default=0)
    longest_streak = db.Column(db.Integer, nullable=False, default=0)

    check_ins = db.relationship('CheckIn', backref='goal', lazy='dynamic', cascade='all, delete-orphan')

    __table_args__ = (
        db.CheckConstraint('current_streak >= 0', name='ck_goals_current_streak_non_negative'),
        db.CheckConstraint('current_streak <= longest_streak', name='ck_goals_streak_le_longest'),
    )

    @property
    def schedule(self):
        """The goal's schedule as a closed variant (see services.goal_schedule)."""
        from services.goal_schedule import schedule_from_goal
        return schedule_from_goal(self.frequency_type, self.frequency_days)

    def is_within_period(self, target_date: date) -> bool:
        if self.start_date and target_date < self.start_date:
            return False
        if self.end_date and target_date > self.end_date:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'pod_id': self.pod_id,
            'title': self.title,
            'description': self.description,
            'frequency_type': self.frequency_type,
            'frequency_days': list(self.frequency_days or []),
            'deadline_time': self.deadline_time.strftime('%H:%M') if self.deadline_time else None,
            'reminder_time': self.reminder_time.strftime('%H:%M') if self.reminder_time else None,
            'timezone': self.timezone,
            'requires_proof': self.requires_proof,
            'is_archived': self.is_archived,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'current_streak': self.current_streak,
            'longest_streak': self.longest_streak,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f'<Goal {self.id} {self.user_id} - {self.title}>'
