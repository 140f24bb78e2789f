import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from download_access.core.settings import settings
from download_access.services.janitor import run_sweep


logger = logging.getLogger(__name__)

JANITOR_JOB_ID = "expired_token_sweep"


def _sweep_job() -> None:
    try:
        run_sweep()
    except Exception:
        logger.exception("Expired token sweep crashed")


def start_scheduler() -> Optional[BackgroundScheduler]:
    if not settings.janitor_enabled:
        return None

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        func=_sweep_job,
        trigger="interval",
        minutes=settings.janitor_interval_minutes,
        id=JANITOR_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    try:
        scheduler.start()
    except Exception:
        logger.exception("Could not start the janitor scheduler")
        return None
    return scheduler


def stop_scheduler(scheduler: Optional[BackgroundScheduler]) -> None:
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
