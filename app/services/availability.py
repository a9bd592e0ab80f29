"""Opening hours evaluation for immediate and scheduled orders"""

from datetime import date, datetime, timedelta
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.config import settings
from app.core.errors import InvalidScheduleWindow, SchedulingDisabled
from app.core.timeutils import (
    DAY_NAMES,
    MINUTES_PER_DAY,
    Clock,
    SystemClock,
    day_name,
    format_time,
    generate_slots,
    get_zone,
    minutes_to_hhmm,
    time_to_minutes,
    to_local,
)
from app.models.business import Business, OpeningHours

logger = structlog.get_logger()


class OpenStatus(BaseModel):
    """Whether immediate orders are accepted at a given moment"""
    is_open: bool
    is_within_opening_hours: bool
    last_order_time_passed: bool = False
    minutes_until_last_order: Optional[int] = None
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    last_order_time: Optional[str] = None
    day: str
    reason: str


class DayHours(BaseModel):
    """Resolved hours for one weekday"""
    day: str
    is_closed: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    last_order_time: Optional[str] = None


def _window(hours: OpeningHours):
    """(open, close, last_order) in minutes, or None without explicit times"""
    if hours.open_time is None or hours.close_time is None:
        return None
    open_minutes = time_to_minutes(hours.open_time)
    close_minutes = time_to_minutes(hours.close_time, is_close=True)
    offset = hours.last_order_before_closing_minutes or 0
    last_order_minutes = max(open_minutes, close_minutes - offset)
    return open_minutes, close_minutes, last_order_minutes


class AvailabilityEvaluator:
    """Answers opening-hours questions for one business and branch"""

    def __init__(
        self,
        db: AsyncSession,
        business: Business,
        branch_id: Optional[UUID] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.business = business
        self.branch_id = branch_id or business.id
        self.clock = clock or SystemClock()
        self.tz = get_zone(business.timezone)

    @property
    def has_branch(self) -> bool:
        return self.branch_id != self.business.id

    def local_now(self) -> datetime:
        return to_local(self.clock.now(), self.tz)

    async def _hours_row(self, owner_type: str, owner_id: UUID, day: str) -> Optional[OpeningHours]:
        result = await self.db.execute(
            select(OpeningHours).where(
                OpeningHours.owner_type == owner_type,
                OpeningHours.owner_id == owner_id,
                OpeningHours.day_of_week == day,
            )
        )
        return result.scalars().first()

    async def hours_for_day(self, day: str) -> Optional[OpeningHours]:
        """Branch hours for the day, falling back to business hours"""
        if self.has_branch:
            hours = await self._hours_row("branch", self.branch_id, day)
            if hours:
                return hours
        return await self._hours_row("business", self.business.id, day)

    async def weekly_hours(self) -> List[DayHours]:
        """Resolved week, branch rows winning when the branch has any"""
        rows = []
        if self.has_branch:
            result = await self.db.execute(
                select(OpeningHours).where(
                    OpeningHours.owner_type == "branch",
                    OpeningHours.owner_id == self.branch_id,
                )
            )
            rows = list(result.scalars().all())
        if not rows:
            result = await self.db.execute(
                select(OpeningHours).where(
                    OpeningHours.owner_type == "business",
                    OpeningHours.owner_id == self.business.id,
                )
            )
            rows = list(result.scalars().all())

        rows.sort(key=lambda row: DAY_NAMES.index(row.day_of_week) if row.day_of_week in DAY_NAMES else 7)

        week = []
        for row in rows:
            window = _window(row)
            week.append(
                DayHours(
                    day=row.day_of_week,
                    is_closed=bool(row.is_closed),
                    open_time=format_time(row.open_time),
                    close_time=format_time(row.close_time),
                    last_order_time=minutes_to_hhmm(window[2]) if window else None,
                )
            )
        return week

    async def is_open_at(self, local: datetime) -> OpenStatus:
        """Evaluate immediate-order eligibility at a local wall time"""
        day = day_name(local.date())
        hours = await self.hours_for_day(day)

        if hours is None:
            return OpenStatus(
                is_open=False,
                is_within_opening_hours=False,
                day=day,
                reason="No opening hours configured",
            )

        if hours.is_closed:
            return OpenStatus(
                is_open=False,
                is_within_opening_hours=False,
                day=day,
                reason="Closed today",
            )

        window = _window(hours)
        if window is None:
            # Open all day, no last-order cutoff
            return OpenStatus(
                is_open=True,
                is_within_opening_hours=True,
                day=day,
                reason="Open",
            )

        open_minutes, close_minutes, last_order_minutes = window
        now_minutes = local.hour * 60 + local.minute

        is_within = open_minutes <= now_minutes <= close_minutes
        is_open = open_minutes <= now_minutes <= last_order_minutes
        last_order_passed = is_within and now_minutes > last_order_minutes

        if is_open:
            reason = "Open"
        elif now_minutes < open_minutes:
            reason = "Not open yet"
        elif last_order_passed:
            reason = "Past last order time"
        else:
            reason = "Closed for the day"

        return OpenStatus(
            is_open=is_open,
            is_within_opening_hours=is_within,
            last_order_time_passed=last_order_passed,
            minutes_until_last_order=last_order_minutes - now_minutes if is_open else None,
            open_time=minutes_to_hhmm(open_minutes),
            close_time=minutes_to_hhmm(close_minutes),
            last_order_time=minutes_to_hhmm(last_order_minutes),
            day=day,
            reason=reason,
        )

    async def is_open_now(self) -> OpenStatus:
        return await self.is_open_at(self.local_now())

    async def get_next_opening_time(self) -> Optional[datetime]:
        """Next local opening time, scanning up to 7 days ahead"""
        now = self.local_now()

        # Later today
        hours = await self.hours_for_day(day_name(now.date()))
        if hours and not hours.is_closed and hours.open_time is not None:
            if now.hour * 60 + now.minute < time_to_minutes(hours.open_time):
                return datetime.combine(now.date(), hours.open_time)

        for offset in range(1, 8):
            target = now.date() + timedelta(days=offset)
            hours = await self.hours_for_day(day_name(target))
            if hours and not hours.is_closed and hours.open_time is not None:
                return datetime.combine(target, hours.open_time)

        return None

    async def get_available_time_slots(self, target: date) -> List[str]:
        """Local HH:MM slots on a day when a scheduled order can be placed"""
        if not self.business.allow_scheduled_orders:
            raise SchedulingDisabled("Sorry, we don't accept scheduled orders.")

        hours = await self.hours_for_day(day_name(target))
        if hours is None or hours.is_closed:
            return []

        window = _window(hours)
        if window is None:
            start, last_order = 0, MINUTES_PER_DAY - 1
        else:
            start, _, last_order = window

        now = self.local_now()
        if target < now.date():
            return []
        if target == now.date():
            start = max(start, now.hour * 60 + now.minute + 1)

        slots = generate_slots(start, last_order, settings.schedule_slot_minutes)
        return [minutes_to_hhmm(minutes) for minutes in slots if minutes < MINUTES_PER_DAY]

    async def check_scheduled_time(self, instant: datetime) -> None:
        """
        Ensure a UTC instant is in the future and inside the opening hours
        (up to last order) of its local day. Raises InvalidScheduleWindow.
        """
        if instant <= self.clock.now():
            raise InvalidScheduleWindow(
                "That time has already passed. Please choose a time in the future.",
                details={"rule": "in_past"},
            )

        local = to_local(instant, self.tz)
        day = day_name(local.date())
        hours = await self.hours_for_day(day)
        label = day.capitalize()

        if hours is None:
            raise InvalidScheduleWindow(
                f"We have no opening hours set for {label}. Please choose another day.",
                details={"rule": "opening_hours", "day": day},
            )
        if hours.is_closed:
            raise InvalidScheduleWindow(
                f"We're closed on {label}. Please choose another day.",
                details={"rule": "opening_hours", "day": day},
            )

        window = _window(hours)
        if window is None:
            return

        open_minutes, _, last_order_minutes = window
        minutes = local.hour * 60 + local.minute
        if not open_minutes <= minutes <= last_order_minutes:
            raise InvalidScheduleWindow(
                f"On {label} we take orders between {minutes_to_hhmm(open_minutes)} "
                f"and {minutes_to_hhmm(last_order_minutes)}.",
                details={
                    "rule": "opening_hours",
                    "day": day,
                    "open_time": minutes_to_hhmm(open_minutes),
                    "last_order_time": minutes_to_hhmm(last_order_minutes),
                },
            )
