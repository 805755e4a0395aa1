"""
Pytest configuration and shared fixtures for the test suite.
"""
import pytest
from datetime import datetime, time
import pytz
from app import create_app
from extensions import db
from models import Goal, CheckIn, CheckInStatus, FrequencyType


def utc(year, month, day, hour=0, minute=0):
    """Aware UTC datetime shorthand for ticks."""
    return datetime(year, month, day, hour, minute, tzinfo=pytz.UTC)


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app('testing')
    app.config.update({
        'SECRET_KEY': 'test-secret-key',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()

@pytest.fixture(scope='function')
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()

@pytest.fixture
def db_session(app):
    """Create database session."""
    with app.app_context():
        yield db.session

@pytest.fixture
def make_goal(db_session):
    """Factory for goals; defaults to a daily 20:00 UTC goal with a 5-day streak."""
    def _make_goal(**overrides):
        values = {
            'user_id': 'user-1',
            'pod_id': 'pod-1',
            'title': 'Evening walk',
            'frequency_type': FrequencyType.DAILY,
            'frequency_days': [],
            'deadline_time': time(20, 0),
            'timezone': 'UTC',
            'current_streak': 5,
            'longest_streak': 8,
        }
        values.update(overrides)
        goal = Goal(**values)
        db_session.add(goal)
        db_session.commit()
        return goal
    return _make_goal

@pytest.fixture
def test_goal(make_goal):
    """Create test goal."""
    return make_goal()

@pytest.fixture
def make_check_in(db_session):
    def _make_check_in(goal, local_date, status=CheckInStatus.COMPLETED, user_id=None):
        check_in = CheckIn(
            goal_id=goal.id,
            user_id=user_id or goal.user_id,
            date=local_date,
            status=status
        )
        db_session.add(check_in)
        db_session.commit()
        return check_in
    return _make_check_in

@pytest.fixture
def auth_headers():
    """Identity headers as forwarded by the upstream gateway."""
    return {'X-User-Id': 'user-1'}
