# booklend/tasks/scheduler.py
from __future__ import annotations

import atexit
import os
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from booklend.errors import Transient

SWEEP_JOB_ID = "due_sweep_job"
RETRY_JOB_ID = "due_sweep_retry"
SCHEDULER_KEY = "apscheduler"


def retry_delay(app, attempt: int) -> timedelta:
    base = app.config["SWEEP_RETRY_BASE_SECONDS"]
    return timedelta(seconds=base * (2 ** (attempt - 1)))


def run_sweep_job(app, scheduler, attempt: int = 0):
    """
    Scheduler entry point. A transient store failure books a one-off retry with
    exponential backoff; anything else is logged and waits for the next tick.
    """
    from booklend.tasks.due_sweep import run_due_sweep

    try:
        return run_due_sweep(app)
    except Transient as ex:
        attempt += 1
        if attempt > app.config["SWEEP_MAX_RETRIES"]:
            app.logger.error(f"[scheduler] due sweep gave up after {attempt - 1} retries: {ex}")
            return None
        delay = retry_delay(app, attempt)
        app.logger.warning(f"[scheduler] due sweep transient failure, retry #{attempt} in {delay}: {ex}")
        scheduler.add_job(
            func=run_sweep_job,
            args=(app, scheduler, attempt),
            trigger=DateTrigger(run_date=datetime.now(timezone.utc) + delay),
            id=RETRY_JOB_ID,
            replace_existing=True,
        )
        return None
    except Exception as ex:
        app.logger.exception(f"[scheduler] due sweep error: {ex}")
        return None


def start_scheduler(app):
    """
    Starts the due/overdue sweep.
    - Skipped when SCHEDULER_ENABLED is off (tests, one-off CLI runs).
    - Debug reloader runs two processes; only the real one schedules.
    """
    if not app.config.get("SCHEDULER_ENABLED", True):
        app.logger.info("[scheduler] disabled by config.")
        return None

    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        app.logger.info("[scheduler] Debug reloader secondary process: scheduler skipped.")
        return None

    scheduler = BackgroundScheduler(timezone="UTC")
    first_run = datetime.now(timezone.utc) + timedelta(minutes=app.config["SWEEP_INITIAL_DELAY_MINUTES"])

    scheduler.add_job(
        func=run_sweep_job,
        args=(app, scheduler),
        trigger=IntervalTrigger(hours=app.config["SWEEP_INTERVAL_HOURS"], start_date=first_run),
        id=SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,        # ticks never overlap
        coalesce=True,          # missed ticks collapse into one
        misfire_grace_time=300,
    )

    scheduler.start()
    app.extensions[SCHEDULER_KEY] = scheduler
    atexit.register(stop_scheduler, app)
    app.logger.info(
        f"[scheduler] due sweep every {app.config['SWEEP_INTERVAL_HOURS']}h, first run at {first_run:%H:%M} UTC."
    )
    return scheduler


def stop_scheduler(app):
    scheduler = app.extensions.get(SCHEDULER_KEY)
    if scheduler and getattr(scheduler, "running", False):
        scheduler.shutdown(wait=False)
        app.logger.info("[scheduler] Scheduler shutdown.")
