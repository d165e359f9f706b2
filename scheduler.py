import logging
from datetime import date

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from periods import today_in
from services import due_repayment_reminders


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.timezone = settings.timezone
        self.reminder_hour = settings.reminder_hour
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        self._reminded: set[tuple[int, str]] = set()

    def _run_job(self, source: str = "manual") -> list[dict[str, object]]:
        logger.info(f"reminder_sweep: source={source}")
        today = today_in(self.timezone)
        with session_scope() as session:
            reminders = due_repayment_reminders(session, today)
        fresh = self._fresh_reminders(reminders, today)
        for row in fresh:
            logger.info(
                f"repayment_reminder: user_id={row['user_id']} source={row['source']} "
                f"status={row['status']} days={row['days']} amount_paise={row['amount_paise']}"
            )
        logger.info(f"reminder_sweep: source={source} reminders={len(fresh)}")
        return fresh

    def _fresh_reminders(
        self, reminders: list[dict[str, object]], today: date
    ) -> list[dict[str, object]]:
        """Reminders not yet sent today; keys from earlier days are dropped."""
        stamp = today.isoformat()
        self._reminded = {key for key in self._reminded if key[1] >= stamp}
        fresh = []
        for row in reminders:
            key = (int(row["income_id"]), stamp)
            if key in self._reminded:
                continue
            self._reminded.add(key)
            fresh.append(row)
        return fresh

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(hour=self.reminder_hour, minute=0)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily"],
            id="repayment_reminders_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly_safety_net"],
            id="repayment_reminders_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with daily {self.reminder_hour:02d}:00 and hourly safety net"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
