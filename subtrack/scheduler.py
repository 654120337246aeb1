# subtrack/scheduler.py
"""
Scheduler:
  - lapse_check_job: moves overdue subscriptions to on_hold / expired.

Config via .env:
  SCHEDULER_ENABLED (default true), LAPSE_CHECK_INTERVAL_MIN (default 60)
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from subtrack.config import LAPSE_CHECK_INTERVAL_MIN
from subtrack.db import SessionLocal
from subtrack.services.lapse_service import mark_lapsed_subscriptions

log = logging.getLogger("subtrack.scheduler")

_scheduler = None
_LAPSE_JOB_ID = "lapse_check_job_v1"


# -------------------------
# Jobs
# -------------------------
def lapse_check_job():
    db = SessionLocal()
    try:
        changed = mark_lapsed_subscriptions(db)
        log.info("[lapse] %d subscriptions updated", changed)
    except SQLAlchemyError:
        db.rollback()
        log.exception("[lapse] check failed")
    finally:
        db.close()


# -------------------------
# Scheduler lifecycle
# -------------------------
def start_scheduler():
    global _scheduler
    if _scheduler is not None:
        log.info("Scheduler already running.")
        return _scheduler

    _scheduler = BackgroundScheduler(timezone="UTC")
    _scheduler.add_job(
        func=lapse_check_job,
        trigger=IntervalTrigger(minutes=LAPSE_CHECK_INTERVAL_MIN),
        id=_LAPSE_JOB_ID,
        name="mark lapsed subscriptions",
        replace_existing=True,
        max_instances=1,
    )
    _scheduler.start()
    log.info("Scheduler started: lapse check every %d min", LAPSE_CHECK_INTERVAL_MIN)
    return _scheduler


def stop_scheduler():
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        log.info("Scheduler stopped.")


def get_scheduler_status():
    status = {"running": False, "jobs": []}
    if _scheduler is None:
        return status
    status["running"] = True
    for job in _scheduler.get_jobs():
        status["jobs"].append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        })
    return status
