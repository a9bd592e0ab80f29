"""Function handlers exposed to the conversation driver"""

from datetime import date, datetime, timedelta, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator
import structlog

from app.config import settings
from app.core.errors import EmptyCart, InvalidScheduleWindow, ItemNotFound
from app.core.timeutils import format_time, get_zone, parse_schedule_text, to_local, to_utc
from app.models.business import Business
from app.models.cart import Cart
from app.schemas.cart import CartResponse
from app.schemas.order import OrderSummary
from app.schemas.tools import FunctionResult
from app.services.catalog import find_available_items, find_item_by_name_or_id
from app.services.notifications import build_cart_summary, format_money
from app.services.orders import cancel_order as cancel_customer_order
from app.services.orders import list_cancellable_orders, list_customer_orders
from app.tools.registry import FunctionCall, function

logger = structlog.get_logger()


def cart_view(cart: Optional[Cart], business: Business) -> CartResponse:
    """Serialize a cart, or an empty placeholder when there is none"""
    if cart is None:
        return CartResponse(summary="Your cart is empty.")

    view = CartResponse.model_validate(cart)
    if cart.scheduled_for is not None:
        local = to_local(cart.scheduled_for, get_zone(business.timezone))
        view.scheduled_for_local = local.isoformat(timespec="minutes")
    view.summary = build_cart_summary(cart, business)
    return view


def _money(business: Business, cents: int) -> str:
    return format_money(cents, business.currency_symbol or "$")


# Argument schemas
class MenuArgs(BaseModel):
    category: Optional[str] = Field(None, description="Only list items in this category")


class ItemNameArgs(BaseModel):
    item_name: str = Field(min_length=1, description="Item name or id as the customer said it")


class AddItemArgs(BaseModel):
    item_name: str = Field(min_length=1, description="Item name or id as the customer said it")
    quantity: int = Field(1, ge=1, le=100, description="How many to add")
    notes: Optional[str] = Field(None, max_length=500, description="Special requests for this item")


class UpdateQuantityArgs(BaseModel):
    item_name: str = Field(min_length=1, description="Item already in the cart")
    quantity: int = Field(le=100, description="New quantity; 0 removes the item")


class DeliveryTypeArgs(BaseModel):
    delivery_type: Literal["takeaway", "delivery", "on_site"]


class DeliveryAddressArgs(BaseModel):
    address: str = Field(min_length=1, max_length=500, description="Full delivery address")


class LocationArgs(BaseModel):
    latitude: float
    longitude: float
    location_name: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)


class ScheduleArgs(BaseModel):
    scheduled_for: Optional[str] = Field(
        None, description="ISO 8601 date-time; without an offset it is read as business local time"
    )
    scheduled_time_text: Optional[str] = Field(
        None, description="Customer phrase such as 'tomorrow at 7pm'"
    )

    @model_validator(mode="after")
    def require_one(self):
        if not self.scheduled_for and not self.scheduled_time_text:
            raise ValueError("scheduled_for or scheduled_time_text is required")
        return self


class NotesArgs(BaseModel):
    notes: str = Field(max_length=1000, description="Free-text notes for the whole order")


class CustomerNameArgs(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class TimeSlotsArgs(BaseModel):
    date: Optional[str] = Field(None, description="YYYY-MM-DD or a phrase like 'tomorrow'; defaults to today")


class CancelOrderArgs(BaseModel):
    order_number: Optional[str] = Field(None, description="Order number to cancel; omit to list cancellable orders")


# Menu
@function(
    "get_menu_items",
    "List the items that can be ordered, optionally within one category.",
    MenuArgs,
)
async def get_menu_items(call: FunctionCall, args: MenuArgs) -> FunctionResult:
    items = await find_available_items(
        call.db, call.business.id, category=args.category, limit=settings.menu_result_limit
    )
    if not items:
        return FunctionResult(success=True, message="No items are available right now.", items=[])

    lines = [f"{item.name} - {_money(call.business, item.price_cents)}" for item in items]
    return FunctionResult(
        success=True,
        message="\n".join(lines),
        items=[
            {
                "id": str(item.id),
                "name": item.name,
                "description": item.description,
                "price_cents": item.price_cents,
                "category": item.category,
                "is_schedulable": bool(item.is_schedulable),
            }
            for item in items
        ],
    )


@function(
    "check_item_availability",
    "Check whether an item exists and can be ordered, including any scheduling rules.",
    ItemNameArgs,
)
async def check_item_availability(call: FunctionCall, args: ItemNameArgs) -> FunctionResult:
    item = await find_item_by_name_or_id(call.db, call.business.id, args.item_name)
    if item is None:
        raise ItemNotFound(
            f"Sorry, I couldn't find '{args.item_name}' on the menu.",
            details={"item": args.item_name},
        )

    available = bool(item.is_available)
    if not available:
        message = f"Sorry, '{item.name}' is not available right now."
    elif item.is_schedulable:
        message = f"'{item.name}' is available and can be scheduled."
        if item.min_schedule_hours:
            message += f" It needs at least {item.min_schedule_hours} hours notice."
    else:
        message = f"'{item.name}' is available ({_money(call.business, item.price_cents)})."

    return FunctionResult(
        success=True,
        message=message,
        available=available,
        item={
            "id": str(item.id),
            "name": item.name,
            "price_cents": item.price_cents,
            "is_schedulable": bool(item.is_schedulable),
            "min_schedule_hours": item.min_schedule_hours or 0,
            "available_from": format_time(item.available_from),
            "available_to": format_time(item.available_to),
            "days_available": item.days_available or [],
        },
    )


# Cart
@function("get_cart", "Show the current cart with totals.")
async def get_cart(call: FunctionCall, args) -> FunctionResult:
    cart = await call.cart_store().peek()
    view = cart_view(cart, call.business)
    return FunctionResult(success=True, message=view.summary, cart=view)


@function(
    "add_item_to_cart",
    "Add an item to the cart. Adding an item already in the cart increases its quantity.",
    AddItemArgs,
    mutates=True,
)
async def add_item_to_cart(call: FunctionCall, args: AddItemArgs) -> FunctionResult:
    logger.info("Tool: add_item_to_cart", business_id=str(call.business.id), item=args.item_name)

    cart, line, item = await call.cart_store().add_item(args.item_name, args.quantity, args.notes)

    warning = None
    if cart.scheduled_for is None:
        status = await call.evaluator().is_open_now()
        if not status.is_open:
            warning = "We're closed for immediate orders right now, so this order will need a scheduled time."
        elif (
            status.minutes_until_last_order is not None
            and status.minutes_until_last_order <= settings.last_order_warning_minutes
        ):
            warning = f"Please note our last order time today is {status.last_order_time}."

    return FunctionResult(
        success=True,
        message=f"Added {args.quantity}x {item.name}.",
        cart=cart_view(cart, call.business),
        warning=warning,
        requires_scheduling_hint=bool(item.is_schedulable),
    )


@function(
    "remove_item_from_cart",
    "Remove an item from the cart entirely.",
    ItemNameArgs,
    mutates=True,
)
async def remove_item_from_cart(call: FunctionCall, args: ItemNameArgs) -> FunctionResult:
    cart, line = await call.cart_store().remove_item(args.item_name)
    return FunctionResult(
        success=True,
        message=f"Removed {line.name}.",
        cart=cart_view(cart, call.business),
    )


@function(
    "update_item_quantity",
    "Set the quantity of an item already in the cart. A quantity of 0 removes it.",
    UpdateQuantityArgs,
    mutates=True,
)
async def update_item_quantity(call: FunctionCall, args: UpdateQuantityArgs) -> FunctionResult:
    cart, line = await call.cart_store().update_quantity(args.item_name, args.quantity)
    if args.quantity <= 0:
        message = f"Removed {line.name}."
    else:
        message = f"{line.name} quantity set to {args.quantity}."
    return FunctionResult(success=True, message=message, cart=cart_view(cart, call.business))


@function("clear_cart", "Remove every item from the cart.", mutates=True)
async def clear_cart(call: FunctionCall, args) -> FunctionResult:
    cart = await call.cart_store().clear()
    return FunctionResult(success=True, message="Your cart is now empty.", cart=cart_view(cart, call.business))


@function(
    "start_fresh",
    "Discard the current cart and conversation state and start a new order.",
    mutates=True,
)
async def start_fresh(call: FunctionCall, args) -> FunctionResult:
    await call.cart_store().reset()
    return FunctionResult(
        success=True,
        message="Starting fresh. What would you like to order?",
        cart=cart_view(None, call.business),
    )


# Delivery and schedule
@function(
    "set_delivery_type",
    "Choose takeaway, delivery or on_site for the order.",
    DeliveryTypeArgs,
    mutates=True,
)
async def set_delivery_type(call: FunctionCall, args: DeliveryTypeArgs) -> FunctionResult:
    cart = await call.cart_store().set_delivery_type(args.delivery_type)

    address_required = (
        cart.delivery_type == "delivery"
        and not cart.delivery_address
        and (cart.latitude is None or cart.longitude is None)
    )
    message = f"Order type set to {args.delivery_type.replace('_', ' ')}."
    if address_required:
        message += " Please send your delivery address or share your location."

    return FunctionResult(
        success=True,
        message=message,
        address_required=address_required,
        cart=cart_view(cart, call.business),
    )


@function(
    "set_delivery_address",
    "Save the delivery address typed by the customer.",
    DeliveryAddressArgs,
    mutates=True,
)
async def set_delivery_address(call: FunctionCall, args: DeliveryAddressArgs) -> FunctionResult:
    cart = await call.cart_store().set_delivery_address(args.address)
    return FunctionResult(
        success=True,
        message="Delivery address saved.",
        cart=cart_view(cart, call.business),
    )


@function(
    "set_location",
    "Save a location shared by the customer. Fails when outside the delivery area.",
    LocationArgs,
    mutates=True,
)
async def set_location(call: FunctionCall, args: LocationArgs) -> FunctionResult:
    cart, distance = await call.cart_store().set_location(
        args.latitude, args.longitude, name=args.location_name, address=args.address
    )
    message = "Location saved."
    if distance is not None:
        message = f"Location saved ({distance} km away)."
    return FunctionResult(
        success=True,
        message=message,
        distance_km=distance,
        cart=cart_view(cart, call.business),
    )


def _resolve_instant(call: FunctionCall, args: ScheduleArgs) -> datetime:
    """UTC naive instant from an ISO string or a customer phrase"""
    tz = get_zone(call.business.timezone)
    parsed = None

    if args.scheduled_for:
        try:
            parsed = datetime.fromisoformat(args.scheduled_for.strip().replace("Z", "+00:00"))
        except ValueError:
            parsed = None

    if parsed is None and args.scheduled_time_text:
        parsed = parse_schedule_text(args.scheduled_time_text, to_local(call.clock.now(), tz))

    if parsed is None:
        raise InvalidScheduleWindow(
            "Sorry, I couldn't understand that time. Could you say the day and time, e.g. 'tomorrow at 7pm'?",
            details={"rule": "unparseable"},
        )

    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return to_utc(parsed, tz)


@function(
    "set_scheduled_time",
    "Schedule the order for a future date and time.",
    ScheduleArgs,
    mutates=True,
)
async def set_scheduled_time(call: FunctionCall, args: ScheduleArgs) -> FunctionResult:
    instant = _resolve_instant(call, args)
    cart = await call.cart_store().set_scheduled_for(instant)

    local = to_local(instant, get_zone(call.business.timezone))
    return FunctionResult(
        success=True,
        message=f"Your order is scheduled for {local.strftime('%A %d %B at %H:%M')}.",
        scheduled_for=local.isoformat(timespec="minutes"),
        cart=cart_view(cart, call.business),
    )


@function(
    "clear_scheduled_time",
    "Remove the scheduled time so the order is for as soon as possible.",
    mutates=True,
)
async def clear_scheduled_time(call: FunctionCall, args) -> FunctionResult:
    cart = await call.cart_store().clear_scheduled_for()
    return FunctionResult(
        success=True,
        message="The order is now for as soon as possible.",
        cart=cart_view(cart, call.business),
    )


# Order details
@function(
    "set_order_notes",
    "Save free-text notes for the whole order, such as allergies or directions.",
    NotesArgs,
    mutates=True,
)
async def set_order_notes(call: FunctionCall, args: NotesArgs) -> FunctionResult:
    cart = await call.cart_store().set_notes(args.notes)
    message = "Notes saved." if cart.notes else "Notes cleared."
    return FunctionResult(success=True, message=message, cart=cart_view(cart, call.business))


@function(
    "set_customer_name",
    "Save the name the order should be under.",
    CustomerNameArgs,
    mutates=True,
)
async def set_customer_name(call: FunctionCall, args: CustomerNameArgs) -> FunctionResult:
    cart = await call.cart_store().set_customer_name(args.name)
    return FunctionResult(
        success=True,
        message=f"Thanks, {cart.customer_name}.",
        cart=cart_view(cart, call.business),
    )


# Opening hours
@function("get_opening_hours", "List the opening hours for each day of the week.")
async def get_opening_hours(call: FunctionCall, args) -> FunctionResult:
    week = await call.evaluator().weekly_hours()
    if not week:
        return FunctionResult(
            success=False,
            error="Opening hours are not configured yet.",
            code="HoursNotConfigured",
        )

    lines = []
    for day in week:
        label = day.day.capitalize()
        if day.is_closed:
            lines.append(f"{label}: Closed")
        elif day.open_time and day.close_time:
            row = f"{label}: {day.open_time} - {day.close_time}"
            if day.last_order_time and day.last_order_time != day.close_time:
                row += f" (last order {day.last_order_time})"
            lines.append(row)
        else:
            lines.append(f"{label}: Open")

    return FunctionResult(
        success=True,
        message="\n".join(lines),
        hours=[day.model_dump() for day in week],
    )


@function("is_open_now", "Check whether the business is open right now and when it closes.")
async def is_open_now(call: FunctionCall, args) -> FunctionResult:
    status = await call.evaluator().is_open_now()

    if status.is_open:
        message = "We're open."
        if status.last_order_time:
            message += f" Last order today is at {status.last_order_time}, we close at {status.close_time}."
    elif status.last_order_time_passed:
        message = (
            f"We're past our last order time ({status.last_order_time}) for today. "
            "You can schedule an order for later."
        )
    else:
        message = "We're closed right now."

    return FunctionResult(success=True, message=message, **status.model_dump())


@function("get_next_opening_time", "Find the next time the business opens.")
async def get_next_opening_time(call: FunctionCall, args) -> FunctionResult:
    evaluator = call.evaluator()
    opening = await evaluator.get_next_opening_time()
    if opening is None:
        return FunctionResult(
            success=False,
            error="We don't have any upcoming opening hours set.",
            code="HoursNotConfigured",
        )

    today = evaluator.local_now().date()
    if opening.date() == today:
        when = f"today at {opening.strftime('%H:%M')}"
    elif opening.date() == today + timedelta(days=1):
        when = f"tomorrow at {opening.strftime('%H:%M')}"
    else:
        when = opening.strftime("%A at %H:%M")

    return FunctionResult(
        success=True,
        message=f"We open {when}.",
        next_opening=opening.isoformat(timespec="minutes"),
    )


@function(
    "get_available_time_slots",
    "List the times an order can be scheduled for on a given day.",
    TimeSlotsArgs,
)
async def get_available_time_slots(call: FunctionCall, args: TimeSlotsArgs) -> FunctionResult:
    evaluator = call.evaluator()
    now_local = evaluator.local_now()

    target = now_local.date()
    if args.date:
        try:
            target = date.fromisoformat(args.date.strip())
        except ValueError:
            parsed = parse_schedule_text(args.date, now_local)
            if parsed is None:
                raise InvalidScheduleWindow(
                    "Sorry, I couldn't understand that day.",
                    details={"rule": "unparseable"},
                )
            target = parsed.date()

    slots = await evaluator.get_available_time_slots(target)
    label = target.strftime("%A %d %B")
    if not slots:
        message = f"There are no available times on {label}."
    else:
        message = f"Available times on {label}: {', '.join(slots)}"

    return FunctionResult(success=True, message=message, date=target.isoformat(), slots=slots)


# Orders
@function(
    "confirm_order",
    "Check the cart is ready to be placed. Does not place the order; the caller commits it afterwards.",
)
async def confirm_order(call: FunctionCall, args) -> FunctionResult:
    cart = await call.cart_store().peek()
    if cart is None:
        raise EmptyCart("Your cart is empty. What would you like to order?")

    await call.transition().validate(cart)

    view = cart_view(cart, call.business)
    return FunctionResult(
        success=True,
        ready_to_confirm=True,
        message=view.summary,
        cart_id=str(cart.id),
        cart=view,
    )


@function("get_my_orders", "List the customer's active orders.")
async def get_my_orders(call: FunctionCall, args) -> FunctionResult:
    orders = await list_customer_orders(call.db, call.business.id, call.customer_identifier)
    if not orders:
        return FunctionResult(success=True, message="You have no active orders.", orders=[])

    tz = get_zone(call.business.timezone)
    lines = []
    for order in orders:
        row = f"#{order.order_number} - {_money(call.business, order.total_cents)}"
        if order.scheduled_for:
            row += f" - scheduled {to_local(order.scheduled_for, tz).strftime('%a %d %b %H:%M')}"
        lines.append(row)

    return FunctionResult(
        success=True,
        message="\n".join(lines),
        orders=[OrderSummary.model_validate(order).model_dump(mode="json") for order in orders],
    )


@function(
    "cancel_order",
    "Cancel a scheduled order. Without an order number, lists the orders that can still be cancelled.",
    CancelOrderArgs,
    mutates=True,
)
async def cancel_order(call: FunctionCall, args: CancelOrderArgs) -> FunctionResult:
    if not args.order_number:
        orders = await list_cancellable_orders(
            call.db, call.business.id, call.customer_identifier, clock=call.clock
        )
        if not orders:
            return FunctionResult(success=True, message="You have no orders that can be cancelled.", orders=[])
        return FunctionResult(
            success=True,
            message="Which order would you like to cancel? "
            + ", ".join(f"#{order.order_number}" for order in orders),
            orders=[OrderSummary.model_validate(order).model_dump(mode="json") for order in orders],
        )

    order = await cancel_customer_order(
        call.db, call.business, call.customer_identifier, args.order_number, clock=call.clock
    )
    return FunctionResult(
        success=True,
        message=f"Order #{order.order_number} has been cancelled.",
        order_number=order.order_number,
        status=order.status,
    )
