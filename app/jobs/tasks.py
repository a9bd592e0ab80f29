"""Background job tasks"""

from datetime import timedelta
from uuid import UUID
import asyncio
import structlog

from app.jobs.celery_app import celery_app
from app.config import settings
from app.core.timeutils import utcnow

logger = structlog.get_logger()


def run_async(coro):
    """Helper to run async functions in sync context"""
    return asyncio.run(coro)


async def _with_session_factory(job, *args):
    """Run a job against the app engine, releasing pooled connections with the loop"""
    from app.database import SessionLocal, engine
    
    try:
        return await job(SessionLocal, *args)
    finally:
        await engine.dispose()


async def _expire_inactive_carts(session_factory, now):
    from app.services.cart import expire_inactive_carts
    
    async with session_factory() as db:
        deleted_count = await expire_inactive_carts(db, now)
        await db.commit()
    return deleted_count


async def _purge_processed_messages(session_factory, now):
    from app.models.processed_message import ProcessedMessage
    from sqlalchemy import delete
    
    cutoff = now - timedelta(hours=settings.message_dedup_ttl_hours)
    
    async with session_factory() as db:
        result = await db.execute(
            delete(ProcessedMessage).where(ProcessedMessage.created_at < cutoff)
        )
        await db.commit()
    return result.rowcount or 0


async def _notify_staff(session_factory, order_id):
    from app.services.notifications import notify_staff_new_order as notify
    
    async with session_factory() as db:
        return await notify(db, order_id)


@celery_app.task(name="expire_inactive_carts")
def expire_inactive_carts():
    """Delete active carts idle past the inactivity window"""
    deleted_count = run_async(_with_session_factory(_expire_inactive_carts, utcnow()))
    logger.info("Expired inactive carts", deleted_count=deleted_count)
    return deleted_count


@celery_app.task(name="purge_processed_messages")
def purge_processed_messages():
    """Drop deduplication records older than the TTL"""
    deleted_count = run_async(_with_session_factory(_purge_processed_messages, utcnow()))
    logger.info("Purged processed messages", deleted_count=deleted_count)
    return deleted_count


@celery_app.task(name="notify_staff_new_order")
def notify_staff_new_order(order_id: str):
    """Text staff contacts about a new order"""
    logger.info("Notifying staff of new order", order_id=order_id)
    return run_async(_with_session_factory(_notify_staff, UUID(order_id)))
