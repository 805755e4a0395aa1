import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    # Security settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database configuration
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///seen_deadlines.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Deadline evaluation
    DEADLINE_EVALUATION_INTERVAL_MINUTES = int(os.environ.get('DEADLINE_EVALUATION_INTERVAL_MINUTES', 15))
    # Lookback window defaults to the scheduler interval
    DEADLINE_LOOKBACK_MINUTES = int(os.environ.get('DEADLINE_LOOKBACK_MINUTES', DEADLINE_EVALUATION_INTERVAL_MINUTES))
    DEADLINE_MAX_CATCH_UP_HOURS = int(os.environ.get('DEADLINE_MAX_CATCH_UP_HOURS', 24))
    DEADLINE_EVALUATOR_WORKERS = int(os.environ.get('DEADLINE_EVALUATOR_WORKERS', 4))

    # Check-ins
    CHECKIN_MAX_CLIENT_TIMESTAMP_AGE_HOURS = int(os.environ.get('CHECKIN_MAX_CLIENT_TIMESTAMP_AGE_HOURS', 6))

    # Notification settings
    NOTIFICATION_PROCESS_INTERVAL = int(os.environ.get('NOTIFICATION_PROCESS_INTERVAL', 30))
    NOTIFICATION_MAX_RETRIES = int(os.environ.get('NOTIFICATION_MAX_RETRIES', 3))
    NOTIFICATION_BATCH_SIZE = int(os.environ.get('NOTIFICATION_BATCH_SIZE', 10))

    # Push gateway (external delivery service)
    PUSH_GATEWAY_URL = os.environ.get('PUSH_GATEWAY_URL')
    PUSH_GATEWAY_TOKEN = os.environ.get('PUSH_GATEWAY_TOKEN')
    PUSH_GATEWAY_TIMEOUT = int(os.environ.get('PUSH_GATEWAY_TIMEOUT', 10))

    # Logging
    LOG_TO_STDOUT = os.environ.get('LOG_TO_STDOUT', 'False').lower() == 'true'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

    # Debug mode - automatically set based on environment
    @property
    def DEBUG(self):
        env = os.environ.get('FLASK_ENV', 'development').lower()
        return env == 'development'

    # Testing mode
    TESTING = False

class ProductionConfig(Config):
    DEBUG = False


class DevelopmentConfig(Config):
    DEBUG = True

class TestingConfig(Config):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    # In-memory SQLite is a single shared connection; evaluate inline
    DEADLINE_EVALUATOR_WORKERS = 1
    DEADLINE_EVALUATION_INTERVAL_MINUTES = 15
    DEADLINE_LOOKBACK_MINUTES = 15
    PUSH_GATEWAY_URL = None

config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': Config
}

def get_config():
    """Get configuration based on environment variable"""
    env = os.environ.get('FLASK_ENV', 'development').lower()
    return config.get(env, config['default'])
