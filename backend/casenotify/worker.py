import logging
from typing import Any

from arq import cron

from casenotify.core.database import SessionLocal, init_db
from casenotify.services.notification_scheduler import NotificationScheduler
from casenotify.tasks import redis_settings

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    init_db()
    logger.info("Worker database initialized")


async def process_scheduled_notifications_task(ctx: dict[str, Any]) -> int:
    """Background task: dispatch pending notifications whose scheduled time has arrived.

    Runs every minute.
    """
    db = SessionLocal()
    try:
        scheduler = NotificationScheduler(db)
        result = await scheduler.process_scheduled()
        if result.processed > 0:
            logger.info(
                "Dispatched %d scheduled notifications (%d failed)",
                result.succeeded,
                result.failed,
            )
        return result.processed
    finally:
        db.close()


async def retry_failed_notifications_task(
    ctx: dict[str, Any], batch_id: str | None = None
) -> int:
    """Background task: retry failed notifications with exponential backoff.

    Runs every 5 minutes; the backoff window on each notification decides
    whether it is picked up.
    """
    db = SessionLocal()
    try:
        scheduler = NotificationScheduler(db)
        result = await scheduler.retry_failed(batch_id=batch_id)
        if result.processed > 0:
            logger.info(
                "Retried %d failed notifications (%d sent)", result.processed, result.succeeded
            )
        return result.processed
    finally:
        db.close()


async def clean_expired_notifications_task(ctx: dict[str, Any]) -> int:
    """Background task: soft-delete expired notifications.

    Runs hourly.
    """
    db = SessionLocal()
    try:
        scheduler = NotificationScheduler(db)
        return scheduler.clean_expired()
    finally:
        db.close()


class WorkerSettings:
    functions = [
        process_scheduled_notifications_task,
        retry_failed_notifications_task,
        clean_expired_notifications_task,
    ]
    cron_jobs = [
        cron(process_scheduled_notifications_task),  # every minute
        cron(
            retry_failed_notifications_task,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
        ),
        cron(clean_expired_notifications_task, minute={0}),  # hourly
    ]
    on_startup = startup
    redis_settings = redis_settings
