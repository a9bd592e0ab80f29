"""Customer-facing order queries and cancellation"""

from datetime import timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.config import settings
from app.core.errors import CancellationWindowPassed, OrderNotFound
from app.core.timeutils import Clock, SystemClock
from app.models.business import Business
from app.models.order import Order, OrderStatusHistory
from app.services.cart import mask_customer

logger = structlog.get_logger()


async def list_customer_orders(
    db: AsyncSession,
    business_id,
    customer_identifier: str,
    limit: int = 20,
) -> List[Order]:
    """Accepted orders for a customer, newest first"""
    result = await db.execute(
        select(Order)
        .where(
            Order.business_id == business_id,
            Order.customer_identifier == customer_identifier,
            Order.status == "accepted",
        )
        .order_by(Order.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_cancellable_orders(
    db: AsyncSession,
    business_id,
    customer_identifier: str,
    clock: Optional[Clock] = None,
) -> List[Order]:
    """Accepted scheduled orders still outside the cancellation cutoff"""
    clock = clock or SystemClock()
    cutoff = clock.now() + timedelta(hours=settings.cancellation_cutoff_hours)
    result = await db.execute(
        select(Order)
        .where(
            Order.business_id == business_id,
            Order.customer_identifier == customer_identifier,
            Order.status == "accepted",
            Order.scheduled_for.is_not(None),
            Order.scheduled_for > cutoff,
        )
        .order_by(Order.scheduled_for)
    )
    return list(result.scalars().all())


def _matches(order: Order, reference: str) -> bool:
    order_id = str(order.id).lower()
    return order_id == reference or order.order_number.lower() == reference or (
        len(reference) >= 4 and order_id.startswith(reference)
    )


async def cancel_order(
    db: AsyncSession,
    business: Business,
    customer_identifier: str,
    reference: str,
    clock: Optional[Clock] = None,
    actor: str = "customer",
) -> Order:
    """
    Cancel one of the customer's accepted scheduled orders.
    
    The order is matched by full id, id prefix or order number. It must
    be scheduled at least cancellation_cutoff_hours ahead. Cancelled
    orders move to "rejected" with one history entry.
    """
    clock = clock or SystemClock()
    needle = (reference or "").strip().lstrip("#").lower()
    if not needle:
        raise OrderNotFound("Which order would you like to cancel?")
    
    result = await db.execute(
        select(Order)
        .where(
            Order.business_id == business.id,
            Order.customer_identifier == customer_identifier,
            Order.status == "accepted",
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order = next((o for o in result.scalars().all() if _matches(o, needle)), None)
    if order is None:
        raise OrderNotFound(
            f"I couldn't find an active order #{needle.upper()}.",
            details={"order_number": needle.upper()},
        )
    
    if order.scheduled_for is None:
        raise CancellationWindowPassed(
            "Only scheduled orders can be cancelled here. Please contact us directly.",
            details={"order_number": order.order_number, "rule": "not_scheduled"},
        )
    
    now = clock.now()
    if order.scheduled_for - now < timedelta(hours=settings.cancellation_cutoff_hours):
        raise CancellationWindowPassed(
            f"Orders can only be cancelled at least {settings.cancellation_cutoff_hours} hours "
            "before the scheduled time. Please contact us directly.",
            details={
                "order_number": order.order_number,
                "rule": "cutoff",
                "cutoff_hours": settings.cancellation_cutoff_hours,
            },
        )
    
    order.status = "rejected"
    order.updated_at = now
    order.history.append(
        OrderStatusHistory(
            status="rejected",
            changed_by=actor,
            note="Cancelled by customer",
            changed_at=now,
        )
    )
    await db.flush()
    
    logger.info(
        "Order cancelled",
        order_id=str(order.id),
        business_id=str(business.id),
        customer=mask_customer(customer_identifier),
    )
    return order
