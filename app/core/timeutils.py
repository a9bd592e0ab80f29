"""Time zone aware day and time arithmetic"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from app.config import settings

logger = structlog.get_logger()

# Index matches datetime.weekday()
DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

MINUTES_PER_DAY = 24 * 60

_DAY_ALIASES = {
    "mon": 0, "tue": 1, "tues": 1, "wed": 2, "thu": 3, "thur": 3, "thurs": 3,
    "fri": 4, "sat": 5, "sun": 6,
}
_DAY_ALIASES.update({name: index for index, name in enumerate(DAY_NAMES)})


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock:
    """Source of the current instant, injected so tests can pin time"""
    
    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return utcnow()


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve a business time zone, falling back to the default"""
    try:
        return ZoneInfo(name or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone, using default", timezone=name)
        return ZoneInfo(settings.default_timezone)


def to_local(instant: datetime, tz: ZoneInfo) -> datetime:
    """Naive UTC instant to naive local wall time"""
    return instant.replace(tzinfo=timezone.utc).astimezone(tz).replace(tzinfo=None)


def to_utc(local: datetime, tz: ZoneInfo) -> datetime:
    """Naive local wall time (or aware datetime) to naive UTC"""
    if local.tzinfo is None:
        local = local.replace(tzinfo=tz)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def day_name(value: date) -> str:
    return DAY_NAMES[value.weekday()]


def time_to_minutes(value: time, is_close: bool = False) -> int:
    """Minutes since midnight; a closing time of 00:00 is end of day"""
    minutes = value.hour * 60 + value.minute
    if is_close and minutes == 0:
        return MINUTES_PER_DAY
    return minutes


def minutes_to_hhmm(minutes: int) -> str:
    minutes = minutes % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_time(value: Optional[time]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%H:%M")


def generate_slots(start_minutes: int, end_minutes: int, step: int) -> List[int]:
    """Slot starts in [start, end], aligned up to the step"""
    if step <= 0:
        raise ValueError("step must be positive")
    first = -(-start_minutes // step) * step
    return list(range(first, end_minutes + 1, step))


def parse_schedule_text(text: str, now_local: datetime) -> Optional[datetime]:
    """
    Parse a customer phrase such as "tomorrow at 7pm", "friday 6:30"
    or "in 2 hours" into a naive local datetime.
    
    Returns None when nothing usable is found.
    """
    if not text or not text.strip():
        return None
    
    lowered = text.lower().strip()
    
    # Full ISO timestamps pass straight through
    try:
        return datetime.fromisoformat(lowered.upper().replace("Z", "+00:00"))
    except ValueError:
        pass
    
    # Relative offsets win over everything else
    relative = re.search(r"\bin\s+(\d+)\s*(hours?|hrs?|minutes?|mins?)\b", lowered)
    if relative:
        amount = int(relative.group(1))
        if relative.group(2).startswith("h"):
            return now_local + timedelta(hours=amount)
        return now_local + timedelta(minutes=amount)
    
    target_day = None
    if re.search(r"\b(tomorrow|tmrw|tmw|2moro)\b", lowered):
        target_day = now_local.date() + timedelta(days=1)
    elif re.search(r"\btoday\b|\btonight\b", lowered):
        target_day = now_local.date()
    else:
        day_match = re.search(r"\b(" + "|".join(sorted(_DAY_ALIASES, key=len, reverse=True)) + r")\b", lowered)
        if day_match:
            weekday = _DAY_ALIASES[day_match.group(1)]
            # Same weekday means next week
            days_ahead = (weekday - now_local.weekday() + 7) % 7 or 7
            target_day = now_local.date() + timedelta(days=days_ahead)
    
    hour = None
    minute = 0
    time_match = re.search(
        r"(?<![/-])\b(\d{1,2})(?::(\d{2}))?\s*(a\.?m\.?|p\.?m\.?)?(?![\w:/-])", lowered
    )
    if time_match:
        hour = int(time_match.group(1))
        minute = int(time_match.group(2) or 0)
        meridiem = (time_match.group(3) or "").replace(".", "")
        if meridiem == "pm" and hour < 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
        elif not meridiem and 1 <= hour <= 11:
            # Bare hours read as afternoon or evening
            hour += 12
        if hour > 23 or minute > 59:
            return None
    
    if target_day is None and hour is None:
        return None
    
    if target_day is None:
        target_day = now_local.date()
    if hour is None:
        hour = 12
    
    return datetime.combine(target_day, time(hour, minute))
