"""Background Tasks Service.
Handles periodic tasks: the deadline evaluation tick, pre-deadline reminders
and draining the notification queue.
"""
import schedule
import logging
import threading
from datetime import datetime
import pytz
from services.deadline_evaluator import DeadlineEvaluator
from services.exceptions import BatchEvaluationError
from services.notification_service import NotificationService
from services.reminder_service import ReminderService


logger = logging.getLogger('background_tasks')


class BackgroundTaskProcessor:

    def __init__(self, app=None, clock=None):
        self.app = app
        # The only place the wall clock is read; every job receives now_utc from here
        self.clock = clock or (lambda: datetime.now(pytz.UTC))
        self.scheduler = schedule.Scheduler()
        self.stop_event = threading.Event()
        self.notification_service = NotificationService()
        self.reminder_service = ReminderService(notifier=self.notification_service)
        self.evaluator = None
        self.last_summary = None

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize with Flask app"""
        self.app = app
        self.evaluator = DeadlineEvaluator(app=app, notifier=self.notification_service)

        interval = app.config.get('DEADLINE_EVALUATION_INTERVAL_MINUTES', 15)

        # Schedule tasks
        self.scheduler.every(interval).minutes.do(self.evaluate_deadlines)
        self.scheduler.every(interval).minutes.do(self.send_reminders)
        self.scheduler.every(app.config.get('NOTIFICATION_PROCESS_INTERVAL', 30)).seconds.do(
            self.process_notification_queue
        )

    def run_scheduler(self):
        """Run the background scheduler (should be called in a separate process/thread)"""
        with self.app.app_context():
            logger.info("Background task scheduler started")

            # Catch up immediately instead of waiting a full interval after a restart
            self.evaluate_deadlines()

            while not self.stop_event.is_set():
                try:
                    self.scheduler.run_pending()
                except Exception as e:
                    logger.error(f"Background scheduler error: {e}", exc_info=True)
                self.stop_event.wait(5)

            logger.info("Background task scheduler stopped")

    def stop(self):
        """Ask the scheduler loop and any running evaluation to wind down."""
        self.stop_event.set()

    def evaluate_deadlines(self, now_utc=None):
        """One deadline evaluation tick. Returns the summary, or None when the run failed."""
        now_utc = now_utc or self.clock()
        logger.debug(f"Running deadline evaluation for {now_utc.isoformat()}")
        try:
            with self.app.app_context():
                summary = self.evaluator.evaluate(now_utc, should_abort=self.stop_event.is_set)
        except BatchEvaluationError as e:
            logger.error(f"Deadline evaluation failed, will retry next tick: {e}")
            if e.summary is not None:
                logger.error(f"Goals not evaluated: {e.summary.failed}")
            return None
        except Exception as e:
            logger.error(f"Error evaluating deadlines: {e}", exc_info=True)
            return None

        self.last_summary = summary
        if summary.missed:
            logger.info(f"Marked {len(summary.missed)} goal(s) as missed")
        if summary.configuration_errors:
            logger.error(f"Goals needing data correction: {summary.configuration_errors}")
        return summary

    def send_reminders(self, now_utc=None):
        now_utc = now_utc or self.clock()
        logger.debug("Running reminder check...")
        try:
            with self.app.app_context():
                sent = self.reminder_service.send_due_reminders(now_utc)
                if sent > 0:
                    logger.info(f"Queued {sent} reminder(s)")
                return sent
        except Exception as e:
            logger.error(f"Error sending reminders: {e}", exc_info=True)
            return 0

    def process_notification_queue(self, now_utc=None):
        """Process pending notifications in the queue"""
        now_utc = now_utc or self.clock()
        logger.debug("Checking notification queue...")
        try:
            with self.app.app_context():
                processed = self.notification_service.process_notification_queue(now_utc)
                if processed > 0:
                    logger.info(f"Processed {processed} notifications from queue")
                else:
                    logger.debug("Notification queue was empty.")
                return processed
        except Exception as e:
            logger.error(f"Error processing notification queue: {e}", exc_info=True)
            return 0


# Standalone function to run the background processor
def run_background_tasks(app, processor=None):
    """Run background tasks - should be called in a separate process"""
    processor = processor or BackgroundTaskProcessor(app)
    processor.run_scheduler()
