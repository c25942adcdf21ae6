"""
Background scheduler.

Orders and registrations move forward on requests and Xendit callbacks.
The scheduler only sweeps unpaid orders whose payment window has closed,
so their tickets return to sale.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from luxetix.config import Settings, get_settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(
    jobstores={'default': MemoryJobStore()},
    executors={'default': AsyncIOExecutor()},
    job_defaults={
        'coalesce': True,
        'max_instances': 1,
        'misfire_grace_time': 60,
    },
    timezone='Asia/Jakarta',
)


async def _expire_stale_orders() -> Dict[str, Any]:
    from luxetix.jobs.order_jobs import expire_stale_orders
    return await expire_stale_orders()


def scheduled_jobs(settings: Settings) -> List[Dict[str, Any]]:
    """Job table: callable, interval and identity of every periodic job."""
    return [
        {
            'func': _expire_stale_orders,
            'minutes': settings.EXPIRY_SWEEP_INTERVAL_MINUTES,
            'id': 'expire_stale_orders',
            'name': 'Expire unpaid orders',
        },
    ]


def _logged(job_id: str, func: Callable[[], Awaitable[Dict[str, Any]]]):
    async def run() -> None:
        # A failed run is retried on the next tick
        try:
            result = await func()
            logger.info(f"Job '{job_id}' finished: {result}")
        except Exception as e:
            logger.exception(f"Job '{job_id}' failed: {e}")
    return run


def start_scheduler(settings: Settings = None) -> None:
    settings = settings or get_settings()
    if scheduler.running:
        return

    for job in scheduled_jobs(settings):
        scheduler.add_job(
            _logged(job['id'], job['func']),
            'interval',
            minutes=job['minutes'],
            id=job['id'],
            name=job['name'],
            replace_existing=True,
        )

    scheduler.start()
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status() -> List[Dict[str, Any]]:
    """Status of the scheduled jobs, for the health endpoint."""
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
