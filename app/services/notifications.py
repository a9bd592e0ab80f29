"""Human-readable summaries and staff notifications"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.rest import Client as TwilioClient
import structlog

from app.config import settings
from app.core.timeutils import get_zone, to_local
from app.models.business import Business, StaffContact
from app.models.cart import Cart
from app.models.order import Order

logger = structlog.get_logger()

DELIVERY_LABELS = {
    "takeaway": "Takeaway",
    "delivery": "Delivery",
    "on_site": "On site",
}


def format_money(cents: int, symbol: str = "$") -> str:
    return f"{symbol}{(cents or 0) / 100:.2f}"


def _lines(record, symbol: str) -> list:
    rows = []
    for line in record.items:
        row = f"{line.quantity}x {line.name} - {format_money(line.unit_price_cents * line.quantity, symbol)}"
        if line.notes:
            row += f" ({line.notes})"
        rows.append(row)
    return rows


def _schedule_text(record, business: Business) -> Optional[str]:
    if record.scheduled_for is None:
        return None
    local = to_local(record.scheduled_for, get_zone(business.timezone))
    return local.strftime("%A %d %B at %H:%M")


def build_cart_summary(cart: Cart, business: Business) -> str:
    """Cart contents and totals as chat text"""
    symbol = business.currency_symbol or "$"
    if not cart.items:
        return "Your cart is empty."
    
    parts = _lines(cart, symbol)
    parts.append(f"Subtotal: {format_money(cart.subtotal_cents, symbol)}")
    if cart.delivery_price_cents:
        parts.append(f"Delivery: {format_money(cart.delivery_price_cents, symbol)}")
    parts.append(f"Total: {format_money(cart.total_cents, symbol)}")
    
    if cart.delivery_type:
        parts.append(f"Type: {DELIVERY_LABELS.get(cart.delivery_type, cart.delivery_type)}")
    if cart.delivery_address:
        parts.append(f"Address: {cart.delivery_address}")
    elif cart.latitude is not None and cart.longitude is not None:
        parts.append(f"Location: {cart.location_name or f'{cart.latitude}, {cart.longitude}'}")
    
    scheduled = _schedule_text(cart, business)
    if scheduled:
        parts.append(f"Scheduled: {scheduled}")
    if cart.notes:
        parts.append(f"Notes: {cart.notes}")
    return "\n".join(parts)


def build_order_summary(order: Order, business: Business) -> str:
    """Order confirmation text, shared by the customer reply and staff SMS"""
    symbol = business.currency_symbol or "$"
    parts = [f"Order #{order.order_number} - {business.name}"]
    parts.extend(_lines(order, symbol))
    if order.delivery_price_cents:
        parts.append(f"Delivery: {format_money(order.delivery_price_cents, symbol)}")
    parts.append(f"Total: {format_money(order.total_cents, symbol)}")
    parts.append(f"Type: {DELIVERY_LABELS.get(order.delivery_type, order.delivery_type)}")
    
    if order.delivery_type == "delivery":
        if order.delivery_address:
            parts.append(f"Address: {order.delivery_address}")
        elif order.latitude is not None and order.longitude is not None:
            parts.append(f"Location: {order.latitude}, {order.longitude}")
    
    scheduled = _schedule_text(order, business)
    parts.append(f"Scheduled: {scheduled}" if scheduled else "For: as soon as possible")
    if order.customer_name:
        parts.append(f"Name: {order.customer_name}")
    if order.notes:
        parts.append(f"Notes: {order.notes}")
    return "\n".join(parts)


async def notify_staff_new_order(db: AsyncSession, order_id: UUID) -> int:
    """Text the order summary to staff contacts; returns messages sent"""
    order = await db.get(Order, order_id)
    if order is None:
        logger.warning("Order not found for staff notification", order_id=str(order_id))
        return 0
    
    business = await db.get(Business, order.business_id)
    result = await db.execute(
        select(StaffContact).where(
            StaffContact.business_id == order.business_id,
            StaffContact.notify_on_order == True,
            StaffContact.is_active == True,
        )
    )
    staff_contacts = result.scalars().all()
    if not staff_contacts:
        return 0
    
    message = "New order!\n" + build_order_summary(order, business)
    client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
    
    sent = 0
    for contact in staff_contacts:
        try:
            client.messages.create(
                body=message,
                from_=settings.twilio_phone_number,
                to=contact.phone,
            )
            sent += 1
        except Exception as e:
            logger.error(
                "Failed to notify staff",
                contact=contact.name,
                order_id=str(order.id),
                error=str(e),
            )
    
    logger.info("Staff notified of new order", order_id=str(order.id), sent=sent)
    return sent
