"""Tests for schedulable item rules"""

import pytest

from app.core.errors import CapacityConflict, InvalidScheduleWindow
from app.services.availability import OpenStatus
from app.services.cart import CartStore
from app.services.scheduling import SchedulingValidator
from tests.conftest import CUSTOMER, book, local


async def cart_with(test_db, business, clock, *names):
    store = CartStore(test_db, business, CUSTOMER, clock=clock)
    cart = None
    for name in names:
        cart, _, _ = await store.add_item(name)
    return cart


@pytest.mark.asyncio
async def test_min_lead_time(test_db, test_business, test_menu_items, clock):
    """Test an item needing 3 hours notice rejects a time 1 hour away"""
    cart = await cart_with(test_db, test_business, clock, "Chef's Table")
    validator = SchedulingValidator(test_db, test_business, clock)

    with pytest.raises(InvalidScheduleWindow) as exc:
        await validator.validate_schedule(cart, local("2026-10-19T13:00"))

    assert exc.value.details["rule"] == "min_lead_time"
    assert "Chef's Table" in exc.value.message
    assert "3 hours" in exc.value.message

    await validator.validate_schedule(cart, local("2026-10-19T15:00"))


@pytest.mark.asyncio
async def test_lead_time_checked_before_item_window(test_db, test_business, test_menu_items, clock):
    """Test the first failing rule is reported"""
    cart = await cart_with(test_db, test_business, clock, "Chef's Table", "Party Platter")

    with pytest.raises(InvalidScheduleWindow) as exc:
        await SchedulingValidator(test_db, test_business, clock).validate_schedule(
            cart, local("2026-10-19T13:00")
        )

    assert exc.value.details["rule"] == "min_lead_time"


@pytest.mark.asyncio
async def test_item_time_window(test_db, test_business, test_menu_items, clock):
    """Test an item available 12:00-18:00 rejects 19:00"""
    cart = await cart_with(test_db, test_business, clock, "Party Platter")
    validator = SchedulingValidator(test_db, test_business, clock)

    with pytest.raises(InvalidScheduleWindow) as exc:
        await validator.validate_schedule(cart, local("2026-10-23T19:00"))

    assert exc.value.details["rule"] == "item_window"
    assert "12:00" in exc.value.message and "18:00" in exc.value.message

    await validator.validate_schedule(cart, local("2026-10-23T18:00"))


@pytest.mark.asyncio
async def test_item_days(test_db, test_business, test_menu_items, clock):
    """Test an item limited to Friday and Saturday rejects Tuesday"""
    cart = await cart_with(test_db, test_business, clock, "Party Platter")

    with pytest.raises(InvalidScheduleWindow) as exc:
        await SchedulingValidator(test_db, test_business, clock).validate_schedule(
            cart, local("2026-10-20T14:00")
        )

    assert exc.value.details["rule"] == "item_days"
    assert "Friday, Saturday" in exc.value.message


@pytest.mark.asyncio
async def test_capacity_conflict(test_db, test_business, test_menu_items, clock):
    """Test a single instance item booked 19:00-21:00 rejects an overlapping time"""
    chef = test_menu_items["Chef's Table"]
    await book(test_db, test_business, chef, local("2026-10-20T19:00"))
    cart = await cart_with(test_db, test_business, clock, "Chef's Table")
    validator = SchedulingValidator(test_db, test_business, clock)

    with pytest.raises(CapacityConflict) as exc:
        await validator.validate_schedule(cart, local("2026-10-20T20:00"))

    assert exc.value.details["capacity"] == 1
    assert exc.value.details["booked"] == 1
    assert "Only 1 instance(s) available" in exc.value.message

    # Back to back bookings do not overlap
    await validator.validate_schedule(cart, local("2026-10-20T21:00"))
    await validator.validate_schedule(cart, local("2026-10-20T17:00"))


@pytest.mark.asyncio
async def test_released_bookings_free_capacity(test_db, test_business, test_menu_items, clock):
    """Test rejected and cancelled orders do not hold capacity"""
    chef = test_menu_items["Chef's Table"]
    await book(test_db, test_business, chef, local("2026-10-20T19:00"), status="rejected")
    await book(test_db, test_business, chef, local("2026-10-20T19:00"), status="cancelled")
    cart = await cart_with(test_db, test_business, clock, "Chef's Table")

    await SchedulingValidator(test_db, test_business, clock).validate_schedule(
        cart, local("2026-10-20T19:00")
    )


@pytest.mark.asyncio
async def test_unlimited_quantity_is_single_instance(test_db, test_business, test_menu_items, clock):
    """Test an item without a quantity allows one overlapping booking"""
    platter = test_menu_items["Party Platter"]
    await book(test_db, test_business, platter, local("2026-10-23T14:00"))
    cart = await cart_with(test_db, test_business, clock, "Party Platter")
    validator = SchedulingValidator(test_db, test_business, clock)

    with pytest.raises(CapacityConflict):
        await validator.validate_schedule(cart, local("2026-10-23T14:30"))

    await validator.validate_schedule(cart, local("2026-10-23T15:00"))


@pytest.mark.asyncio
async def test_concurrent_bookings_allowed(test_db, test_business, test_menu_items, clock):
    tray = test_menu_items["Catering Tray"]
    await book(test_db, test_business, tray, local("2026-10-20T13:00"), quantity=5)
    cart = await cart_with(test_db, test_business, clock, "Catering Tray")

    await SchedulingValidator(test_db, test_business, clock).validate_schedule(
        cart, local("2026-10-20T13:00")
    )


@pytest.mark.asyncio
async def test_check_schedule(test_db, test_business, test_menu_items, clock):
    """Test the non raising form"""
    cart = await cart_with(test_db, test_business, clock, "Chef's Table")
    validator = SchedulingValidator(test_db, test_business, clock)

    result = await validator.check_schedule(cart, local("2026-10-19T13:00"))
    assert result["valid"] is False
    assert result["code"] == "InvalidScheduleWindow"

    result = await validator.check_schedule(cart, local("2026-10-20T19:00"))
    assert result == {"valid": True, "error": None}


@pytest.mark.asyncio
async def test_requires_scheduling(test_db, test_business, test_menu_items, clock):
    closed = OpenStatus(is_open=False, is_within_opening_hours=False, day="monday", reason="Closed for the day")
    open_ = OpenStatus(is_open=True, is_within_opening_hours=True, day="monday", reason="Open")
    validator = SchedulingValidator(test_db, test_business, clock)

    cart = await cart_with(test_db, test_business, clock, "Margherita Pizza")
    assert await validator.requires_scheduling(cart, closed) is False

    cart = await cart_with(test_db, test_business, clock, "Chef's Table")
    assert await validator.requires_scheduling(cart, closed) is True
    assert await validator.requires_scheduling(cart, open_) is False

    cart.scheduled_for = local("2026-10-20T19:00")
    assert await validator.requires_scheduling(cart, closed) is False
