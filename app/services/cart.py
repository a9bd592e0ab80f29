"""Cart state per business, branch and customer"""

from datetime import datetime, timedelta
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.config import settings
from app.core.errors import (
    InvalidArguments,
    InvalidLocation,
    ItemNotFound,
    ItemNotInCart,
    ItemUnavailable,
    OutOfDeliveryRadius,
    SchedulingDisabled,
)
from app.core.geo import validate_coordinates, within_radius
from app.core.timeutils import Clock, SystemClock
from app.models.business import Business
from app.models.cart import Cart, CartItem
from app.models.menu import Item
from app.services.availability import AvailabilityEvaluator
from app.services.catalog import find_item_by_name_or_id
from app.services.scheduling import SchedulingValidator

logger = structlog.get_logger()

DELIVERY_TYPES = ("takeaway", "delivery", "on_site")


def mask_customer(identifier: str) -> str:
    """Last four characters of a customer identifier, for logs"""
    return f"...{identifier[-4:]}" if identifier else ""


def recalculate_totals(cart: Cart, business: Business) -> None:
    """Derive subtotal, delivery price and total from the current lines"""
    cart.subtotal_cents = sum(line.unit_price_cents * line.quantity for line in cart.items)
    if cart.delivery_type == "delivery" and cart.items:
        cart.delivery_price_cents = business.delivery_price_cents or 0
    else:
        cart.delivery_price_cents = 0
    cart.total_cents = cart.subtotal_cents + cart.delivery_price_cents


class CartStore:
    """Authoritative in-progress cart for one customer"""

    def __init__(
        self,
        db: AsyncSession,
        business: Business,
        customer_identifier: str,
        branch_id: Optional[UUID] = None,
        clock: Optional[Clock] = None,
        language: Optional[str] = None,
    ):
        self.db = db
        self.business = business
        self.branch_id = branch_id or business.id
        self.customer_identifier = customer_identifier
        self.clock = clock or SystemClock()
        self.language = language

    def _log_context(self) -> dict:
        return {
            "business_id": str(self.business.id),
            "customer": mask_customer(self.customer_identifier),
        }

    def is_expired(self, cart: Cart, now: Optional[datetime] = None) -> bool:
        now = now or self.clock.now()
        return cart.updated_at < now - timedelta(minutes=settings.cart_inactivity_minutes)

    async def _active(self, lock: bool = False) -> Optional[Cart]:
        stmt = (
            select(Cart)
            .where(
                Cart.business_id == self.business.id,
                Cart.branch_id == self.branch_id,
                Cart.customer_identifier == self.customer_identifier,
                Cart.status == "active",
            )
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def peek(self) -> Optional[Cart]:
        """Active, unexpired cart without creating or touching anything"""
        cart = await self._active()
        if cart is None or self.is_expired(cart):
            return None
        return cart

    async def last_completed(self) -> Optional[Cart]:
        """Most recent cart promoted into an order within the inactivity window"""
        cutoff = self.clock.now() - timedelta(minutes=settings.cart_inactivity_minutes)
        result = await self.db.execute(
            select(Cart)
            .where(
                Cart.business_id == self.business.id,
                Cart.branch_id == self.branch_id,
                Cart.customer_identifier == self.customer_identifier,
                Cart.status == "completed",
                Cart.order_id.is_not(None),
                Cart.updated_at >= cutoff,
            )
            .order_by(Cart.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, language: Optional[str] = None) -> Cart:
        """Fetch the active cart, or start an empty one"""
        language = language or self.language
        cart = await self._active(lock=True)

        if cart is not None and self.is_expired(cart):
            logger.info("Discarding inactive cart", cart_id=str(cart.id), **self._log_context())
            await self.db.delete(cart)
            await self.db.flush()
            cart = None

        if cart is None:
            now = self.clock.now()
            cart = Cart(
                business_id=self.business.id,
                branch_id=self.branch_id,
                customer_identifier=self.customer_identifier,
                status="active",
                subtotal_cents=0,
                delivery_price_cents=0,
                total_cents=0,
                language=language,
                created_at=now,
                updated_at=now,
                items=[],
            )
            self.db.add(cart)
            await self.db.flush()
            logger.info("Cart created", cart_id=str(cart.id), **self._log_context())
        elif language and cart.language != language:
            cart.language = language

        return cart

    async def _save(self, cart: Cart) -> Cart:
        recalculate_totals(cart, self.business)
        cart.updated_at = self.clock.now()
        await self.db.flush()
        return cart

    async def _resolve_line(self, cart: Cart, query: str) -> CartItem:
        """Find a cart line by item id, catalog match or line name"""
        needle = str(query or "").strip()
        for line in cart.items:
            if str(line.item_id) == needle:
                return line

        item = await find_item_by_name_or_id(self.db, self.business.id, needle)
        if item is not None:
            for line in cart.items:
                if line.item_id == item.id:
                    return line

        lowered = needle.casefold()
        if lowered:
            for line in cart.items:
                name = line.name.casefold()
                if name == lowered or lowered in name:
                    return line

        raise ItemNotInCart(
            f"'{needle}' is not in your cart.",
            details={"item": needle, "cart_items": [line.name for line in cart.items]},
        )

    async def add_item(
        self,
        query: str,
        quantity: int = 1,
        notes: Optional[str] = None,
    ) -> Tuple[Cart, CartItem, Item]:
        """Merge an item into the cart, resolved against the live catalog"""
        if quantity < 1:
            raise InvalidArguments("Quantity must be at least 1.", details={"quantity": quantity})

        item = await find_item_by_name_or_id(self.db, self.business.id, query)
        if item is None:
            raise ItemNotFound(
                f"Sorry, I couldn't find '{query}' on the menu.",
                details={"item": query},
            )
        if not item.is_available:
            raise ItemUnavailable(
                f"Sorry, '{item.name}' is not available right now.",
                details={"item": item.name},
            )

        cart = await self.get_or_create()

        line = next((line for line in cart.items if line.item_id == item.id), None)
        if line is not None:
            line.quantity += quantity
            if notes:
                line.notes = notes
        else:
            line = CartItem(
                item_id=item.id,
                name=item.name,
                unit_price_cents=item.price_cents,
                quantity=quantity,
                notes=notes,
                position=max((existing.position for existing in cart.items), default=-1) + 1,
            )
            cart.items.append(line)

        logger.info("Item added to cart", item=item.name, quantity=quantity, **self._log_context())
        return await self._save(cart), line, item

    async def remove_item(self, query: str) -> Tuple[Cart, CartItem]:
        cart = await self.get_or_create()
        line = await self._resolve_line(cart, query)
        cart.items.remove(line)

        logger.info("Item removed from cart", item=line.name, **self._log_context())
        return await self._save(cart), line

    async def update_quantity(self, query: str, quantity: int) -> Tuple[Cart, CartItem]:
        """Overwrite a line's quantity; zero or less removes the line"""
        if quantity <= 0:
            return await self.remove_item(query)

        cart = await self.get_or_create()
        line = await self._resolve_line(cart, query)
        line.quantity = quantity
        return await self._save(cart), line

    async def set_delivery_type(self, delivery_type: str) -> Cart:
        delivery_type = (delivery_type or "").strip().lower()
        if delivery_type not in DELIVERY_TYPES:
            raise InvalidArguments(
                "Please choose takeaway, delivery or on site.",
                details={"delivery_type": delivery_type, "allowed": list(DELIVERY_TYPES)},
            )

        cart = await self.get_or_create()
        cart.delivery_type = delivery_type
        return await self._save(cart)

    async def set_delivery_address(self, address: str) -> Cart:
        address = (address or "").strip()
        if not address:
            raise InvalidArguments("Please send the full delivery address.")

        cart = await self.get_or_create()
        cart.delivery_address = address
        if cart.delivery_type is None:
            cart.delivery_type = "delivery"
        return await self._save(cart)

    async def set_location(
        self,
        latitude: float,
        longitude: float,
        name: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Tuple[Cart, Optional[float]]:
        """Store a shared location; rejects points outside the delivery radius"""
        if not validate_coordinates(latitude, longitude):
            raise InvalidLocation(
                "That location doesn't look valid. Please share it again.",
                details={"latitude": latitude, "longitude": longitude},
            )

        inside, distance = within_radius(
            self.business.latitude,
            self.business.longitude,
            self.business.delivery_radius_km,
            latitude,
            longitude,
        )
        if not inside:
            logger.info(
                "Location outside delivery radius",
                distance_km=distance,
                radius_km=self.business.delivery_radius_km,
                **self._log_context(),
            )
            raise OutOfDeliveryRadius(
                f"Sorry, that location is {distance} km away and we only deliver within "
                f"{self.business.delivery_radius_km:g} km.",
                details={"distance_km": distance, "radius_km": self.business.delivery_radius_km},
            )

        cart = await self.get_or_create()
        cart.latitude = latitude
        cart.longitude = longitude
        cart.location_name = name
        if address:
            cart.delivery_address = address.strip()
        if cart.delivery_type is None:
            cart.delivery_type = "delivery"
        return await self._save(cart), distance

    async def set_scheduled_for(self, instant: datetime) -> Cart:
        """Validate a UTC instant against hours and item rules, then persist"""
        if not self.business.allow_scheduled_orders:
            raise SchedulingDisabled("Sorry, we don't accept scheduled orders.")

        cart = await self.get_or_create()

        evaluator = AvailabilityEvaluator(self.db, self.business, self.branch_id, self.clock)
        await evaluator.check_scheduled_time(instant)

        validator = SchedulingValidator(self.db, self.business, self.clock)
        await validator.validate_schedule(cart, instant)

        cart.scheduled_for = instant
        logger.info("Cart scheduled", scheduled_for=instant.isoformat(), **self._log_context())
        return await self._save(cart)

    async def clear_scheduled_for(self) -> Cart:
        cart = await self.get_or_create()
        cart.scheduled_for = None
        return await self._save(cart)

    async def set_notes(self, notes: Optional[str]) -> Cart:
        cart = await self.get_or_create()
        cart.notes = (notes or "").strip() or None
        return await self._save(cart)

    async def set_customer_name(self, name: str) -> Cart:
        name = (name or "").strip()
        if not name:
            raise InvalidArguments("Please tell me the name for the order.")

        cart = await self.get_or_create()
        cart.customer_name = name
        return await self._save(cart)

    async def clear(self) -> Cart:
        """Empty the lines; delivery type and schedule stay"""
        cart = await self.get_or_create()
        cart.items.clear()
        return await self._save(cart)

    async def mark_completed(self, cart: Cart, order_id: UUID) -> Cart:
        cart.status = "completed"
        cart.order_id = order_id
        cart.updated_at = self.clock.now()
        await self.db.flush()
        return cart

    async def reset(self) -> bool:
        """Discard the active cart; the next interaction starts fresh"""
        cart = await self._active(lock=True)
        if cart is None:
            return False
        await self.db.delete(cart)
        await self.db.flush()
        logger.info("Cart reset", cart_id=str(cart.id), **self._log_context())
        return True


async def expire_inactive_carts(db: AsyncSession, now: datetime) -> int:
    """Delete active carts idle longer than the inactivity window"""
    cutoff = now - timedelta(minutes=settings.cart_inactivity_minutes)
    stale = select(Cart.id).where(Cart.status == "active", Cart.updated_at < cutoff)

    await db.execute(
        delete(CartItem).where(CartItem.cart_id.in_(stale)).execution_options(synchronize_session=False)
    )
    result = await db.execute(
        delete(Cart)
        .where(Cart.status == "active", Cart.updated_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
