"""Tests for opening hours evaluation"""

from datetime import date, datetime, time

import pytest

from app.core.errors import InvalidScheduleWindow, SchedulingDisabled
from app.models.business import Branch, Business
from app.services.availability import AvailabilityEvaluator
from tests.conftest import TIMEZONE, local, set_hours


@pytest.mark.asyncio
async def test_open_at_noon(test_db, test_business, clock):
    """Test a weekday inside opening hours is open"""
    status = await AvailabilityEvaluator(test_db, test_business, clock=clock).is_open_now()

    assert status.is_open is True
    assert status.is_within_opening_hours is True
    assert status.day == "monday"
    assert status.minutes_until_last_order == 600
    assert status.close_time == "22:00"


@pytest.mark.asyncio
async def test_past_last_order_time(test_db, test_business, clock):
    """Test 21:45 with a 30 minute last order offset is closed but within hours"""
    await set_hours(test_db, test_business.id, "monday", time(9, 0), time(22, 0), last_order=30)
    clock.set_local("2026-10-19T21:45")

    status = await AvailabilityEvaluator(test_db, test_business, clock=clock).is_open_now()

    assert status.is_open is False
    assert status.is_within_opening_hours is True
    assert status.last_order_time_passed is True
    assert status.last_order_time == "21:30"
    assert status.reason == "Past last order time"


@pytest.mark.asyncio
async def test_closed_day(test_db, test_business, clock):
    """Test a day marked closed"""
    clock.set_local("2026-10-25T12:00")

    status = await AvailabilityEvaluator(test_db, test_business, clock=clock).is_open_now()

    assert status.is_open is False
    assert status.is_within_opening_hours is False
    assert status.reason == "Closed today"


@pytest.mark.asyncio
async def test_before_opening_and_after_closing(test_db, test_business, clock):
    evaluator = AvailabilityEvaluator(test_db, test_business, clock=clock)

    clock.set_local("2026-10-19T07:00")
    status = await evaluator.is_open_now()
    assert status.is_open is False
    assert status.reason == "Not open yet"

    clock.set_local("2026-10-19T23:00")
    status = await evaluator.is_open_now()
    assert status.is_open is False
    assert status.is_within_opening_hours is False
    assert status.reason == "Closed for the day"


@pytest.mark.asyncio
async def test_no_hours_configured(test_db, clock):
    """Test a business without any opening hours is closed"""
    business = Business(name="No Hours Cafe", timezone=TIMEZONE)
    test_db.add(business)
    await test_db.commit()

    status = await AvailabilityEvaluator(test_db, business, clock=clock).is_open_now()

    assert status.is_open is False
    assert status.reason == "No opening hours configured"


@pytest.mark.asyncio
async def test_day_without_times_is_open(test_db, test_business, clock):
    """Test an open day with no explicit times accepts orders all day"""
    await set_hours(test_db, test_business.id, "monday")
    clock.set_local("2026-10-19T03:00")

    status = await AvailabilityEvaluator(test_db, test_business, clock=clock).is_open_now()

    assert status.is_open is True
    assert status.last_order_time is None


@pytest.mark.asyncio
async def test_closing_at_midnight(test_db, test_business, clock):
    """Test a 00:00 closing time keeps the evening open"""
    await set_hours(test_db, test_business.id, "monday", time(18, 0), time(0, 0))
    clock.set_local("2026-10-19T23:30")

    status = await AvailabilityEvaluator(test_db, test_business, clock=clock).is_open_now()

    assert status.is_open is True
    assert status.close_time == "00:00"


@pytest.mark.asyncio
async def test_branch_hours_override_business(test_db, test_business, clock):
    """Test branch rows win over the business rows for that day"""
    branch = Branch(business_id=test_business.id, name="Hamra")
    test_db.add(branch)
    await test_db.commit()
    await set_hours(test_db, branch.id, "monday", time(14, 0), time(16, 0), owner_type="branch")

    status = await AvailabilityEvaluator(test_db, test_business, branch.id, clock).is_open_now()
    assert status.is_open is False
    assert status.reason == "Not open yet"

    # Days without a branch row fall back to the business
    clock.set_local("2026-10-20T12:00")
    status = await AvailabilityEvaluator(test_db, test_business, branch.id, clock).is_open_now()
    assert status.is_open is True


@pytest.mark.asyncio
async def test_weekly_hours(test_db, test_business, clock):
    await set_hours(test_db, test_business.id, "friday", time(9, 0), time(23, 0), last_order=45)

    week = await AvailabilityEvaluator(test_db, test_business, clock=clock).weekly_hours()

    assert [day.day for day in week][0] == "monday"
    assert len(week) == 7
    friday = next(day for day in week if day.day == "friday")
    assert friday.last_order_time == "22:15"
    sunday = next(day for day in week if day.day == "sunday")
    assert sunday.is_closed is True


@pytest.mark.asyncio
async def test_next_opening_time(test_db, test_business, clock):
    """Test next opening later today and across a closed day"""
    evaluator = AvailabilityEvaluator(test_db, test_business, clock=clock)

    clock.set_local("2026-10-19T07:00")
    assert await evaluator.get_next_opening_time() == datetime(2026, 10, 19, 9, 0)

    clock.set_local("2026-10-24T23:00")
    assert await evaluator.get_next_opening_time() == datetime(2026, 10, 26, 9, 0)


@pytest.mark.asyncio
async def test_available_time_slots(test_db, test_business, clock):
    """Test slots cover the day up to last order, and only the future today"""
    evaluator = AvailabilityEvaluator(test_db, test_business, clock=clock)

    slots = await evaluator.get_available_time_slots(date(2026, 10, 20))
    assert slots[0] == "09:00"
    assert slots[-1] == "22:00"
    assert len(slots) == 27

    today = await evaluator.get_available_time_slots(date(2026, 10, 19))
    assert today[0] == "12:30"

    assert await evaluator.get_available_time_slots(date(2026, 10, 25)) == []
    assert await evaluator.get_available_time_slots(date(2026, 10, 18)) == []


@pytest.mark.asyncio
async def test_available_time_slots_respect_last_order(test_db, test_business, clock):
    await set_hours(test_db, test_business.id, "tuesday", time(9, 0), time(22, 0), last_order=30)

    slots = await AvailabilityEvaluator(test_db, test_business, clock=clock).get_available_time_slots(
        date(2026, 10, 20)
    )

    assert slots[-1] == "21:30"


@pytest.mark.asyncio
async def test_available_time_slots_scheduling_disabled(test_db, test_business, clock):
    test_business.allow_scheduled_orders = False
    await test_db.commit()

    with pytest.raises(SchedulingDisabled):
        await AvailabilityEvaluator(test_db, test_business, clock=clock).get_available_time_slots(
            date(2026, 10, 20)
        )


@pytest.mark.asyncio
async def test_check_scheduled_time(test_db, test_business, clock):
    """Test scheduled instants must be future and inside the day's hours"""
    evaluator = AvailabilityEvaluator(test_db, test_business, clock=clock)

    await evaluator.check_scheduled_time(local("2026-10-20T19:00"))

    with pytest.raises(InvalidScheduleWindow) as exc:
        await evaluator.check_scheduled_time(local("2026-10-19T11:00"))
    assert exc.value.details["rule"] == "in_past"

    with pytest.raises(InvalidScheduleWindow) as exc:
        await evaluator.check_scheduled_time(local("2026-10-25T13:00"))
    assert exc.value.details["rule"] == "opening_hours"

    with pytest.raises(InvalidScheduleWindow) as exc:
        await evaluator.check_scheduled_time(local("2026-10-20T23:00"))
    assert exc.value.details["rule"] == "opening_hours"
    assert exc.value.details["last_order_time"] == "22:00"
