"""
PIX Poller — reconciles orders awaiting payment with AbacatePay.

Webhooks are the primary payment signal; this loop covers missed or
delayed deliveries. Each cycle:
    1. Loads orders in `awaiting_payment` with a PIX charge (oldest first)
    2. Asks AbacatePay for each charge's status
    3. Applies PAID / EXPIRED through order_service (same path as the webhook)
    4. Retries delivery for orders stuck in `paid` (out of keys at payment time)
    5. Purges expired login sessions

This runs as an asyncio background task during the FastAPI app lifespan.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select

from config import settings
from database import async_session
from db_models import Order
from domain.enums import OrderStatus
from services import order_service, pix_service, user_service

logger = logging.getLogger(__name__)

# Poller state
_poller_task: Optional[asyncio.Task] = None
_is_running: bool = False
_errors_count: int = 0
_cycles: int = 0
_orders_updated: int = 0
_last_run_at: Optional[datetime] = None


async def poll_once(session_factory=async_session) -> int:
    """
    Run one reconciliation cycle. Returns the number of orders whose status changed.
    """
    updated = 0
    async with session_factory() as db:
        awaiting = await order_service.list_awaiting_payment(db)
        for order in awaiting:
            before = order.status
            await pix_service.refresh_order(db, order)
            if order.status != before:
                updated += 1

        res = await db.execute(
            select(Order).where(Order.status == OrderStatus.PAID.value).order_by(Order.paid_at)
        )
        for order in res.scalars().all():
            if await order_service.deliver_order(db, order):
                await db.commit()
                updated += 1

        purged = await user_service.purge_expired_sessions(db)
        await db.commit()
        if purged:
            logger.info(f"  Purged {purged} expired session(s)")

    return updated


async def _poller_loop():
    global _is_running, _errors_count, _cycles, _orders_updated, _last_run_at

    _is_running = True
    poll_interval = settings.pix_poll_seconds
    logger.info(f"PIX poller started (polling every {poll_interval}s)")

    while _is_running:
        try:
            await asyncio.sleep(poll_interval)
            updated = await poll_once()
            _cycles += 1
            _orders_updated += updated
            _last_run_at = datetime.utcnow()
            if updated:
                logger.info(f"  PIX poller updated {updated} order(s)")

        except asyncio.CancelledError:
            logger.info("PIX poller cancelled")
            break
        except Exception as e:
            _errors_count += 1
            logger.error(f"PIX poller cycle error: {e}")
            if _errors_count > 5:
                backoff = min(60, poll_interval * 2)
                logger.warning(f"  Too many errors, backing off {backoff}s")
                await asyncio.sleep(backoff)

    _is_running = False
    logger.info("PIX poller stopped")


# ════════════════════════════════════════════════════════════════════
# Public API: start, stop, status
# ════════════════════════════════════════════════════════════════════


async def start():
    """Start the poller as a background asyncio task."""
    global _poller_task

    if _poller_task and not _poller_task.done():
        logger.warning("PIX poller already running")
        return

    _poller_task = asyncio.create_task(_poller_loop())


async def stop():
    """Stop the poller gracefully."""
    global _poller_task, _is_running
    _is_running = False

    if _poller_task and not _poller_task.done():
        _poller_task.cancel()
        try:
            await _poller_task
        except asyncio.CancelledError:
            pass

    _poller_task = None


def get_status() -> dict:
    """Poller status for the /pix-poller/status endpoint."""
    return {
        "running": _is_running,
        "enabled": settings.pix_poller_enabled,
        "pollIntervalSeconds": settings.pix_poll_seconds,
        "cycles": _cycles,
        "ordersUpdated": _orders_updated,
        "errorsCount": _errors_count,
        "lastRunAt": _last_run_at.isoformat() if _last_run_at else None,
    }
