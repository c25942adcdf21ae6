"""
Order Processing Jobs

Background jobs for ticket orders:
- Expire pending orders whose payment window has passed and release their tickets
"""

import logging
from typing import Dict, Any, Optional
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from luxetix.config import Settings, get_settings
from luxetix.models.order import Order, OrderStatus
from luxetix.services.order_service import OrderService

logger = logging.getLogger(__name__)


async def expire_stale_orders(
    db: Optional[AsyncSession] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """
    Expire pending orders more than EXPIRY_SWEEP_GRACE_MINUTES past expires_at.

    Runs every EXPIRY_SWEEP_INTERVAL_MINUTES. Each order moves with the
    same conditional write the webhook uses, so a payment landing during
    the sweep wins or loses cleanly.
    """
    if db is None:
        from luxetix.database import get_db_session

        async with get_db_session() as session:
            return await expire_stale_orders(session, settings)

    settings = settings or get_settings()
    start_time = datetime.now(timezone.utc)
    cutoff = start_time - timedelta(minutes=settings.EXPIRY_SWEEP_GRACE_MINUTES)
    processed_count = 0
    expired_count = 0

    result = await db.execute(
        select(Order)
        .options(selectinload(Order.items))
        .where(
            Order.status == OrderStatus.PENDING.value,
            Order.expires_at.is_not(None),
            Order.expires_at < cutoff,
        )
        .order_by(Order.expires_at)
        .limit(settings.EXPIRY_SWEEP_BATCH_SIZE)
    )
    stale_orders = result.scalars().all()

    service = OrderService(db, settings)
    for order in stale_orders:
        processed_count += 1
        if await service.expire_order(order):
            expired_count += 1

    await db.commit()

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    if processed_count:
        logger.info(
            f"Expiry sweep: {expired_count}/{processed_count} stale orders expired in {duration:.2f}s"
        )

    return {
        "processed": processed_count,
        "expired": expired_count,
        "duration_seconds": duration,
    }
