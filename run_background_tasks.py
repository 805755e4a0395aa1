#!/usr/bin/env python3
"""
Background Tasks Runner for the SEEN deadline service.
Run this script to evaluate goal deadlines every tick, queue reminders and
deliver queued notifications.

Usage:
    python run_background_tasks.py

This should be run as a separate process, one per deployment.
"""
import os
import sys
import signal
import logging
from app import create_app
from services.background_tasks import BackgroundTaskProcessor, run_background_tasks

def setup_background_logger():
    """Sets up a dedicated logger for background tasks."""
    logger = logging.getLogger('background_tasks')
    logger.setLevel(logging.DEBUG)

    if not logger.handlers:
        log_dir = 'logs'
        if not os.path.exists(log_dir):
            os.makedirs(log_dir)

        # File handler for debug logs
        file_handler = logging.FileHandler(os.path.join(log_dir, 'background_tasks.log'))
        file_handler.setLevel(logging.DEBUG)
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        # Console handler for info logs
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger

def main():
    """Main entry point for background tasks"""
    logger = setup_background_logger()
    logger.info("Starting SEEN deadline background tasks...")

    # Create Flask app
    app = create_app()
    # Services log through the app logger; send it to the same handlers
    for handler in logger.handlers:
        app.logger.addHandler(handler)
    processor = BackgroundTaskProcessor(app)

    def handle_shutdown(signum, frame):
        logger.info(f"Received signal {signum}, finishing in-flight work...")
        processor.stop()

    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        # Run background tasks
        run_background_tasks(app, processor)
    except KeyboardInterrupt:
        processor.stop()
        logger.info("\nBackground tasks stopped by user.")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Error running background tasks: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
