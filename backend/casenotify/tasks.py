from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from casenotify.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_process_scheduled_notifications() -> Job:
    """Enqueue an out-of-cycle scheduled-dispatch sweep."""
    return await enqueue_task("process_scheduled_notifications_task")


async def enqueue_retry_failed_notifications(batch_id: str | None = None) -> Job:
    """Enqueue a retry sweep, optionally limited to one bulk batch."""
    return await enqueue_task("retry_failed_notifications_task", batch_id)


async def enqueue_clean_expired_notifications() -> Job:
    """Enqueue an expiry cleanup sweep."""
    return await enqueue_task("clean_expired_notifications_task")
