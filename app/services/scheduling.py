"""Scheduling constraints for schedulable items"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.config import settings
from app.core.errors import CapacityConflict, InvalidScheduleWindow
from app.core.timeutils import (
    DAY_NAMES,
    Clock,
    SystemClock,
    day_name,
    format_time,
    get_zone,
    time_to_minutes,
    to_local,
)
from app.models.business import Business
from app.models.cart import Cart
from app.models.menu import Item
from app.models.order import Order, OrderItem

logger = structlog.get_logger()

# Bookings in these states no longer hold capacity
RELEASED_STATUSES = ("rejected", "cancelled")


class SchedulingValidator:
    """
    Checks a proposed instant against the schedulable items in a cart.

    Rules run in a fixed order and the first failure wins: minimum lead
    time, item time-of-day window, item weekdays, then capacity.
    """

    def __init__(self, db: AsyncSession, business: Business, clock: Optional[Clock] = None):
        self.db = db
        self.business = business
        self.clock = clock or SystemClock()
        self.tz = get_zone(business.timezone)

    async def load_items(self, cart: Cart, lock: bool = False) -> Dict[UUID, Item]:
        """Catalog rows for the cart lines, locked in id order when asked"""
        item_ids = sorted({line.item_id for line in cart.items}, key=str)
        if not item_ids:
            return {}

        stmt = select(Item).where(Item.id.in_(item_ids)).order_by(Item.id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return {item.id: item for item in result.scalars().all()}

    async def schedulable_lines(self, cart: Cart, lock: bool = False) -> List[Tuple[object, Item]]:
        items = await self.load_items(cart, lock=lock)
        return [
            (line, items[line.item_id])
            for line in cart.items
            if line.item_id in items and items[line.item_id].is_schedulable
        ]

    async def booked_quantity(self, item: Item, start: datetime, end: datetime) -> Tuple[int, int]:
        """(total quantity, booking count) of live bookings overlapping [start, end)"""
        duration = timedelta(minutes=item.duration_minutes or settings.default_item_duration_minutes)
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(OrderItem.quantity), 0),
                func.count(OrderItem.id),
            )
            .join(Order, Order.id == OrderItem.order_id)
            .where(
                Order.business_id == self.business.id,
                OrderItem.item_id == item.id,
                Order.scheduled_for.is_not(None),
                Order.status.not_in(RELEASED_STATUSES),
                Order.scheduled_for < end,
                Order.scheduled_for > start - duration,
            )
        )
        booked, count = result.one()
        return int(booked or 0), int(count or 0)

    async def validate_schedule(self, cart: Cart, proposed: datetime, lock: bool = False) -> None:
        """Raise InvalidScheduleWindow or CapacityConflict on the first broken rule"""
        lines = await self.schedulable_lines(cart, lock=lock)
        if not lines:
            return

        now = self.clock.now()
        local = to_local(proposed, self.tz)

        # Minimum lead time
        for line, item in lines:
            if item.min_schedule_hours and proposed - now < timedelta(hours=item.min_schedule_hours):
                hours_until = round((proposed - now).total_seconds() / 3600, 1)
                raise InvalidScheduleWindow(
                    f"'{item.name}' must be scheduled at least {item.min_schedule_hours} hours in advance. "
                    f"The chosen time is {hours_until} hours from now.",
                    details={
                        "rule": "min_lead_time",
                        "item": item.name,
                        "min_schedule_hours": item.min_schedule_hours,
                        "hours_until": hours_until,
                    },
                )

        # Time-of-day window
        minutes = local.hour * 60 + local.minute
        for line, item in lines:
            if item.available_from is None and item.available_to is None:
                continue
            start = time_to_minutes(item.available_from) if item.available_from else 0
            end = time_to_minutes(item.available_to, is_close=True) if item.available_to else 24 * 60
            if not start <= minutes <= end:
                window_from = format_time(item.available_from) or "00:00"
                window_to = format_time(item.available_to) or "24:00"
                raise InvalidScheduleWindow(
                    f"'{item.name}' is only available between {window_from} and {window_to}.",
                    details={
                        "rule": "item_window",
                        "item": item.name,
                        "available_from": window_from,
                        "available_to": window_to,
                    },
                )

        # Day of week
        day = day_name(local.date())
        for line, item in lines:
            days = [str(d).lower() for d in (item.days_available or [])]
            if days and day not in days:
                allowed = ", ".join(d.capitalize() for d in DAY_NAMES if d in days)
                raise InvalidScheduleWindow(
                    f"'{item.name}' is not available on {day.capitalize()}. Available days: {allowed}.",
                    details={
                        "rule": "item_days",
                        "item": item.name,
                        "day": day,
                        "days_available": days,
                    },
                )

        # Capacity
        for line, item in lines:
            if item.quantity is None and item.allow_concurrent_bookings:
                continue

            duration = timedelta(minutes=item.duration_minutes or settings.default_item_duration_minutes)
            booked, bookings = await self.booked_quantity(item, proposed, proposed + duration)

            if item.quantity is None:
                conflict = bookings > 0
                capacity = 1
            else:
                conflict = booked + line.quantity > item.quantity
                capacity = item.quantity

            if conflict:
                logger.info(
                    "Capacity conflict",
                    business_id=str(self.business.id),
                    item=item.name,
                    scheduled_for=proposed.isoformat(),
                    booked=booked,
                    requested=line.quantity,
                    capacity=capacity,
                )
                raise CapacityConflict(
                    f"'{item.name}' is already fully booked for that time. "
                    f"Only {capacity} instance(s) available, and {booked} are already scheduled. "
                    f"Please choose another time.",
                    details={
                        "item": item.name,
                        "scheduled_for": local.isoformat(timespec="minutes"),
                        "capacity": capacity,
                        "booked": booked,
                        "requested": line.quantity,
                        "duration_minutes": int(duration.total_seconds() // 60),
                    },
                )

    async def check_schedule(self, cart: Cart, proposed: datetime) -> dict:
        """Non-raising form: {"valid": bool, "error": str | None}"""
        try:
            await self.validate_schedule(cart, proposed)
        except (InvalidScheduleWindow, CapacityConflict) as e:
            return {"valid": False, "error": e.message, "code": e.code, "details": e.details}
        return {"valid": True, "error": None}

    async def requires_scheduling(self, cart: Cart, open_status) -> bool:
        """Schedulable items, no time chosen, and closed for immediate orders"""
        if cart.scheduled_for is not None or open_status.is_open:
            return False
        return bool(await self.schedulable_lines(cart))
