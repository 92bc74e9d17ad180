from __future__ import annotations

import logging
import os
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore

from guildvault.config import settings

log = logging.getLogger(__name__)

_SCHED: Optional[AsyncIOScheduler] = None

OUTBOX_JOB_ID = "dispatch_trade_events"


def init_scheduler(db_url: str) -> AsyncIOScheduler:
    """Создает и сохраняет singleton APScheduler с SQLAlchemyJobStore (SQLite)."""
    global _SCHED
    if _SCHED:
        return _SCHED

    sync_url = db_url.replace("+aiosqlite", "")  # sqlite:///...
    if sync_url.startswith("sqlite:///"):
        directory = os.path.dirname(sync_url[len("sqlite:///"):])
        if directory:
            os.makedirs(directory, exist_ok=True)

    jobstores = {"default": SQLAlchemyJobStore(url=sync_url)}
    _SCHED = AsyncIOScheduler(jobstores=jobstores, timezone="UTC")
    log.info("Scheduler initialized (jobstore=%s)", sync_url)
    return _SCHED


def register_background_jobs(scheduler: AsyncIOScheduler, interval_secs: Optional[int] = None) -> None:
    """Регистрирует фоновые задачи в планировщике"""
    from guildvault.workers.outbox import dispatch_trade_events

    scheduler.add_job(
        dispatch_trade_events,
        trigger="interval",
        seconds=interval_secs or settings.notify_interval_secs,
        id=OUTBOX_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=30,
    )
    log.info("Background job '%s' registered", OUTBOX_JOB_ID)
