from flask import Flask, jsonify
from sqlalchemy import text
from config import get_config
from extensions import db, migrate
import logging
from logging.handlers import RotatingFileHandler
import os
import sys

def create_app(config_name=None):
    app = Flask(__name__)

    # Get configuration based on environment or passed parameter
    if config_name:
        from config import config
        app.config.from_object(config[config_name])
    else:
        app.config.from_object(get_config())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models to register them with SQLAlchemy
    from models import Goal, CheckIn, EvaluationRun, EvaluatorCheckpoint, NotificationQueue  # noqa: F401

    # Setup error logging
    if not app.debug and not app.testing:
        if app.config.get('LOG_TO_STDOUT'):
            handler = logging.StreamHandler(sys.stdout)
        else:
            if not os.path.exists('logs'):
                os.mkdir('logs')
            handler = RotatingFileHandler('logs/seen_deadlines.log', maxBytes=10240, backupCount=10)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))
        handler.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
        app.logger.addHandler(handler)
        app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
        app.logger.info('SEEN deadline service startup')

    # Register blueprints
    from routes import checkins_bp

    app.register_blueprint(checkins_bp, url_prefix='/checkins')

    @app.route('/health')
    def health():
        db_status = 'disconnected'
        try:
            db.session.execute(text('SELECT 1'))
            db_status = 'connected'
        except Exception as e:
            app.logger.error(f'Database health check failed: {e}')
        return jsonify({'success': True, 'data': {'status': 'ok', 'database': db_status}})

    # Error handlers
    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'error': {'code': 'NOT_FOUND', 'message': 'Not found'}}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'success': False, 'error': {'code': 'INTERNAL_ERROR', 'message': 'Internal server error'}}), 500

    return app
