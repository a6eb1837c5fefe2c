import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from config import get_settings
from database import session_scope
from services import StoreUnavailable, rebuild_expense_summaries


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        settings = get_settings()
        self.repair_minutes = settings.summary_repair_minutes
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        logger.info(f"summary_repair_run: source={source}")
        try:
            with session_scope(self.session_factory) as session:
                count = rebuild_expense_summaries(session)
        except StoreUnavailable:
            logger.exception(f"summary_repair_run: source={source} store unavailable")
            return 0
        logger.info(f"summary_repair_run: source={source} expenses={count}")
        return count

    def start(self) -> None:
        self._run_job("startup")

        if self.repair_minutes > 0:
            trigger = IntervalTrigger(minutes=self.repair_minutes)
            self.scheduler.add_job(
                self._run_job,
                trigger,
                args=["interval"],
                id="summary_repair",
                replace_existing=True,
                misfire_grace_time=300,
            )

        self.scheduler.start()
        logger.info(f"Scheduler started with summary repair every {self.repair_minutes} min")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
