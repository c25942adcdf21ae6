"""Scheduled jobs: the order expiry sweep."""

from luxetix.jobs.scheduler import (
    scheduler, scheduled_jobs, start_scheduler, shutdown_scheduler, get_job_status,
)
from luxetix.jobs.order_jobs import expire_stale_orders

__all__ = [
    "scheduler",
    "scheduled_jobs",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "expire_stale_orders",
]
