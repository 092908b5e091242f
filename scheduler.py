import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from services import AccountService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.reconcile_hour = settings.reconcile_hour
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        logger.info(f"reconcile_run: source={source}")
        with session_scope() as session:
            corrected = AccountService(session).reconcile_all()
        logger.info(f"reconcile_run: source={source} accounts_corrected={corrected}")
        return corrected

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(hour=self.reconcile_hour, minute=15)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[f"daily_{self.reconcile_hour:02d}:15"],
            id="reconcile_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with daily {self.reconcile_hour:02d}:15 reconcile")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
