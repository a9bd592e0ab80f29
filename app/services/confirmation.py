"""Cart to order promotion"""

from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.errors import (
    AddressRequired,
    BusinessClosed,
    DeliveryTypeRequired,
    EmptyCart,
    InvalidScheduleWindow,
    PastLastOrderCutoff,
    SchedulingRequired,
)
from app.core.timeutils import Clock, SystemClock
from app.models.business import Business
from app.models.cart import Cart
from app.models.order import Order, OrderItem, OrderStatusHistory
from app.services.availability import AvailabilityEvaluator, OpenStatus
from app.services.cart import CartStore, mask_customer
from app.services.scheduling import SchedulingValidator

logger = structlog.get_logger()


class OrderConfirmationTransition:
    """
    Validates a cart and promotes it into an accepted order.

    Validation fails fast in this order: empty cart, missing delivery
    type, missing address for delivery, scheduling required, scheduled
    time no longer valid, and finally closed for immediate orders.
    Services only flush; the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession, business: Business, clock: Optional[Clock] = None):
        self.db = db
        self.business = business
        self.clock = clock or SystemClock()

    async def validate(self, cart: Cart, lock: bool = False) -> Optional[OpenStatus]:
        if not cart.items:
            raise EmptyCart("Your cart is empty. What would you like to order?")

        if not cart.delivery_type:
            raise DeliveryTypeRequired(
                "Would you like takeaway, delivery or to eat on site?",
                details={"allowed": ["takeaway", "delivery", "on_site"]},
            )

        if cart.delivery_type == "delivery":
            has_coordinates = cart.latitude is not None and cart.longitude is not None
            if not cart.delivery_address and not has_coordinates:
                raise AddressRequired("Please send your delivery address or share your location.")

        evaluator = AvailabilityEvaluator(self.db, self.business, cart.branch_id, self.clock)
        validator = SchedulingValidator(self.db, self.business, self.clock)

        if cart.scheduled_for is None:
            status = await evaluator.is_open_now()
            if await validator.requires_scheduling(cart, status):
                lines = await validator.schedulable_lines(cart)
                raise SchedulingRequired(
                    "Some items in your cart need to be scheduled while we're closed. "
                    "When would you like your order?",
                    details={"items": [item.name for _, item in lines], "reason": status.reason},
                )

            if not status.is_open:
                if status.is_within_opening_hours and status.last_order_time_passed:
                    raise PastLastOrderCutoff(
                        f"We stopped taking orders for today at {status.last_order_time}. "
                        "Would you like to schedule your order for later?",
                        details={
                            "last_order_time": status.last_order_time,
                            "close_time": status.close_time,
                        },
                    )
                raise BusinessClosed(
                    "We're closed right now. Would you like to schedule your order for when we open?",
                    details={"reason": status.reason},
                    requires_scheduling=bool(self.business.allow_scheduled_orders),
                )
            return status

        if not self.business.allow_scheduled_orders:
            raise InvalidScheduleWindow(
                "Sorry, we don't accept scheduled orders. Please remove the scheduled time.",
                details={"rule": "scheduling_disabled"},
            )

        # Hours may differ on the scheduled day, and capacity may have moved
        await evaluator.check_scheduled_time(cart.scheduled_for)
        await validator.validate_schedule(cart, cart.scheduled_for, lock=lock)
        return None

    async def _existing_order(self, cart: Cart) -> Optional[Order]:
        if cart.order_id is None:
            return None
        result = await self.db.execute(select(Order).where(Order.id == cart.order_id))
        return result.scalar_one_or_none()

    async def confirm(
        self,
        cart_id: UUID,
        order_source: Optional[str] = None,
        created_via: Optional[str] = None,
        actor: str = "customer",
    ) -> Tuple[Order, bool]:
        """
        Promote the cart into an accepted order.

        Returns (order, created). A cart that was already promoted returns
        its existing order with created False.
        """
        result = await self.db.execute(
            select(Cart)
            .where(Cart.id == cart_id, Cart.business_id == self.business.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        cart = result.scalar_one_or_none()
        if cart is None:
            raise EmptyCart("Your cart is empty. What would you like to order?")

        if cart.status == "completed":
            order = await self._existing_order(cart)
            if order is not None:
                logger.info("Order already confirmed", order_id=str(order.id), cart_id=str(cart.id))
                return order, False
            raise EmptyCart("Your cart is empty. What would you like to order?")

        store = CartStore(self.db, self.business, cart.customer_identifier, cart.branch_id, self.clock)
        if store.is_expired(cart):
            logger.info(
                "Refusing inactive cart",
                cart_id=str(cart.id),
                customer=mask_customer(cart.customer_identifier),
            )
            raise EmptyCart("Your cart is empty. What would you like to order?")

        await self.validate(cart, lock=True)

        now = self.clock.now()

        order = Order(
            business_id=cart.business_id,
            branch_id=cart.branch_id,
            cart_id=cart.id,
            customer_identifier=cart.customer_identifier,
            customer_name=cart.customer_name,
            language=cart.language,
            subtotal_cents=cart.subtotal_cents,
            delivery_price_cents=cart.delivery_price_cents,
            total_cents=cart.total_cents,
            delivery_type=cart.delivery_type,
            delivery_address=cart.delivery_address,
            latitude=cart.latitude,
            longitude=cart.longitude,
            location_name=cart.location_name,
            scheduled_for=cart.scheduled_for,
            status="accepted",
            order_source=order_source,
            created_via=created_via,
            notes=cart.notes,
            created_at=now,
            updated_at=now,
            items=[
                OrderItem(
                    item_id=line.item_id,
                    name=line.name,
                    unit_price_cents=line.unit_price_cents,
                    quantity=line.quantity,
                    notes=line.notes,
                    position=line.position,
                )
                for line in cart.items
            ],
            history=[
                OrderStatusHistory(
                    status="accepted",
                    changed_by=actor,
                    note="Order confirmed",
                    changed_at=now,
                )
            ],
        )
        self.db.add(order)
        await self.db.flush()

        await store.mark_completed(cart, order.id)

        logger.info(
            "Order confirmed",
            order_id=str(order.id),
            order_number=order.order_number,
            business_id=str(self.business.id),
            customer=mask_customer(cart.customer_identifier),
            total_cents=order.total_cents,
            scheduled=order.scheduled_for is not None,
        )
        return order, True
