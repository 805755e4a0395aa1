"""CheckIn model definition.
One row per (goal, local date). MISSED rows are written only by the deadline
evaluator and are never overwritten.
"""
from datetime import datetime
from extensions import db


class CheckInStatus:
    COMPLETED = 'COMPLETED'
    MISSED = 'MISSED'
    SKIPPED = 'SKIPPED'

    ALL = (COMPLETED, MISSED, SKIPPED)
    USER_SETTABLE = (COMPLETED, SKIPPED)


class CheckIn(db.Model):
    __tablename__ = 'check_ins'

    id = db.Column(db.Integer, primary_key=True)
    goal_id = db.Column(db.Integer, db.ForeignKey('goals.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)  # goal-local calendar date
    status = db.Column(db.String(20), nullable=False)
    comment = db.Column(db.Text)
    proof_url = db.Column(db.String(500))
    client_timestamp = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('goal_id', 'date', name='uq_check_ins_goal_id_date'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'goal_id': self.goal_id,
            'user_id': self.user_id,
            'date': self.date.isoformat() if self.date else None,
            'status': self.status,
            'comment': self.comment,
            'proof_url': self.proof_url,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<CheckIn {self.goal_id} {self.date} - {self.status}>'
