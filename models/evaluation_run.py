"""Evaluator bookkeeping models.
EvaluationRun records what the deadline evaluator decided for a (goal, date)
so later ticks can skip redundant lookups and retry failed ones.
EvaluatorCheckpoint remembers where the last successful run ended.
Correctness never depends on these tables; the check_ins unique key does.
"""
from datetime import datetime
from extensions import db


class EvaluationRunStatus:
    PENDING = 'PENDING'    # evaluation failed, retry on a later tick
    RESOLVED = 'RESOLVED'  # a terminal check-in exists for the date


class EvaluationRun(db.Model):
    __tablename__ = 'evaluation_runs'

    id = db.Column(db.Integer, primary_key=True)
    goal_id = db.Column(db.Integer, db.ForeignKey('goals.id', ondelete='CASCADE'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=EvaluationRunStatus.PENDING, index=True)
    outcome = db.Column(db.String(30))  # missed, honored, already_resolved
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('goal_id', 'date', name='uq_evaluation_runs_goal_id_date'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'goal_id': self.goal_id,
            'date': self.date.isoformat() if self.date else None,
            'status': self.status,
            'outcome': self.outcome,
            'attempts': self.attempts,
            'last_error': self.last_error,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<EvaluationRun {self.goal_id} {self.date} - {self.status}>'


class EvaluatorCheckpoint(db.Model):
    __tablename__ = 'evaluator_checkpoints'

    name = db.Column(db.String(50), primary_key=True)
    # Naive UTC, like every other DateTime column in this schema
    last_completed_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<EvaluatorCheckpoint {self.name} @ {self.last_completed_at}>'
