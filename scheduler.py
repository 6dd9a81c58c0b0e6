import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from alerts import LoanReminderProcessor, purge_old_notifications
from config import get_settings
from database import session_scope
from recurrence import RecurringProcessor


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_recurring(self, source: str = "manual") -> None:
        logger.info(f"scheduler_run: job=recurring source={source}")
        with session_scope() as session:
            result = RecurringProcessor(session).run()
            logger.info(
                f"scheduler_run: job=recurring source={source} "
                f"processed={result.processed_count} skipped={result.skipped_count} "
                f"errors={len(result.errors)}"
            )

    def _run_loan_reminders(self, source: str = "manual") -> None:
        with session_scope() as session:
            created = LoanReminderProcessor(session).run()
            logger.info(
                f"scheduler_run: job=loan_reminders source={source} created={created}"
            )

    def _run_cleanup(self, source: str = "manual") -> None:
        with session_scope() as session:
            deleted = purge_old_notifications(session)
            logger.info(
                f"scheduler_run: job=notification_cleanup source={source} "
                f"deleted={deleted}"
            )

    def start(self) -> None:
        # Postings are idempotent per month, so a startup pass is a safe catch-up.
        self._run_recurring("startup")

        self.scheduler.add_job(
            self._run_recurring,
            CronTrigger(hour=6, minute=0),
            args=["daily_06:00"],
            id="recurring_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            self._run_loan_reminders,
            CronTrigger(hour=9, minute=0),
            args=["daily_09:00"],
            id="loan_reminders_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            self._run_cleanup,
            CronTrigger(day_of_week="sun", hour=2, minute=0),
            args=["weekly_sun_02:00"],
            id="notification_cleanup_weekly",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info("Scheduler started with recurring, loan reminder and cleanup jobs")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
