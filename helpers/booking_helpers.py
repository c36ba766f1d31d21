import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import dateutil.parser
import pytz
from babel.dates import format_datetime, format_time

from conversation_manager.types import AvailableSlot
import config

logger = logging.getLogger(__name__)

# Mailbox settings report Windows zone names
WINDOWS_TO_IANA = {
    "Eastern Standard Time": "America/New_York",
    "Central Standard Time": "America/Chicago",
    "Mountain Standard Time": "America/Denver",
    "US Mountain Standard Time": "America/Phoenix",
    "Pacific Standard Time": "America/Los_Angeles",
    "Alaskan Standard Time": "America/Anchorage",
    "Hawaiian Standard Time": "Pacific/Honolulu",
    "Atlantic Standard Time": "America/Halifax",
    "GMT Standard Time": "Europe/London",
    "W. Europe Standard Time": "Europe/Berlin",
    "Romance Standard Time": "Europe/Paris",
    "Central European Standard Time": "Europe/Warsaw",
    "FLE Standard Time": "Europe/Helsinki",
    "India Standard Time": "Asia/Kolkata",
    "China Standard Time": "Asia/Shanghai",
    "Tokyo Standard Time": "Asia/Tokyo",
    "AUS Eastern Standard Time": "Australia/Sydney",
}

# A zone of "UTC" means the user never configured one
UNSET_TIMEZONES = {"UTC", "Etc/UTC", "Coordinated Universal Time"}

TOPICS = {
    "attendance": "Attendance Discussion",
    "tardy": "Tardiness Discussion",
    "performance": "Performance Review",
    "warning": "Disciplinary Warning",
    "termination": "Termination Discussion",
    "leave": "Leave Request Discussion",
}

SLOT_DATE_FORMAT = "EEE, MMM d, h:mm a"
SLOT_TIME_FORMAT = "h:mm a"

BusyInterval = Tuple[datetime, datetime]


def to_iana(timezone_name: Optional[str]) -> Optional[str]:
    """Map a Windows zone name to IANA; IANA names pass through unchanged."""
    if not timezone_name:
        return None
    name = timezone_name.strip()
    return WINDOWS_TO_IANA.get(name, name)


def usable_timezone(timezone_name: Optional[str]) -> Optional[str]:
    """The IANA name for a configured zone, or None for unset, UTC or unknown zones."""
    if not timezone_name or timezone_name.strip() in UNSET_TIMEZONES:
        return None
    name = to_iana(timezone_name)
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Ignoring unknown timezone %r", timezone_name)
        return None
    return name


def resolve_timezone(*candidates: Optional[str]) -> str:
    """
    Return the first usable timezone among the candidates, in priority order,
    falling back to the configured default.

    Example usage:
        resolve_timezone(client_timezone, mailbox_timezone)
    """
    for candidate in candidates:
        name = usable_timezone(candidate)
        if name:
            return name
    return config.DEFAULT_TIMEZONE


def next_business_start(now: datetime, timezone_name: str) -> datetime:
    """
    The first moment at or after now that falls on a weekday within working
    hours, rounded up to the next half hour.
    """
    tz = pytz.timezone(timezone_name)
    local = now.astimezone(tz)

    while True:
        if local.weekday() >= 5 or local.hour >= config.WORKING_HOURS_END:
            next_day = (local + timedelta(days=1)).date()
            local = tz.localize(datetime(next_day.year, next_day.month, next_day.day, config.WORKING_HOURS_START))
            continue
        if local.hour < config.WORKING_HOURS_START:
            local = tz.localize(datetime(local.year, local.month, local.day, config.WORKING_HOURS_START))
            continue
        break

    if local.minute or local.second or local.microsecond:
        base = local.replace(second=0, microsecond=0)
        bump = 30 - base.minute if base.minute < 30 else 60 - base.minute
        local = tz.normalize(base + timedelta(minutes=bump))
    return local


def parse_busy_events(events: Iterable[Dict[str, Any]], timezone_name: str) -> List[BusyInterval]:
    """
    Convert Graph calendarView events into busy intervals.

    Events shown as "free" never block a slot. Graph returns naive local
    times alongside the zone they are expressed in.
    """
    busy = []
    for event in events:
        if event.get("showAs") == "free":
            continue
        try:
            start = _parse_graph_time(event["start"], timezone_name)
            end = _parse_graph_time(event["end"], timezone_name)
        except (KeyError, ValueError, pytz.UnknownTimeZoneError) as e:
            logger.warning("Skipping unparseable event %r: %s", event.get("subject"), e)
            continue
        busy.append((start, end))
    return busy


def _parse_graph_time(value: Dict[str, str], default_timezone: str) -> datetime:
    dt = dateutil.parser.isoparse(value["dateTime"])
    if dt.tzinfo is not None:
        return dt
    tz_field = (value.get("timeZone") or "").strip()
    if tz_field in UNSET_TIMEZONES:
        tz_name = "UTC"
    else:
        tz_name = to_iana(tz_field) or default_timezone
    return pytz.timezone(tz_name).localize(dt)


def overlaps(start: datetime, end: datetime, busy: Iterable[BusyInterval]) -> bool:
    # Half-open intervals: back-to-back meetings do not overlap
    return any(start < busy_end and busy_start < end for busy_start, busy_end in busy)


def find_available_slots(
    start: datetime,
    end: datetime,
    busy: List[BusyInterval],
    timezone_name: str,
) -> List[AvailableSlot]:
    """Free meeting slots between start and end, earliest first."""
    tz = pytz.timezone(timezone_name)
    duration = timedelta(minutes=config.MEETING_DURATION_MINUTES)
    local_start = start.astimezone(tz)
    local_end = end.astimezone(tz)

    slots = []
    day = local_start.date()
    while day <= local_end.date():
        if day.weekday() < 5:
            slot_start = tz.localize(datetime(day.year, day.month, day.day, config.WORKING_HOURS_START))
            day_end = tz.localize(datetime(day.year, day.month, day.day, config.WORKING_HOURS_END))
            while slot_start + duration <= day_end:
                slot_end = slot_start + duration
                if slot_start >= local_start and slot_end <= local_end and not overlaps(slot_start, slot_end, busy):
                    slots.append(AvailableSlot(
                        start=slot_start,
                        end=slot_end,
                        formatted=format_slot(slot_start, slot_end, timezone_name),
                    ))
                slot_start = slot_end
        day += timedelta(days=1)
    return slots


def select_slots(slots: List[AvailableSlot], count: int = config.TOP_SLOT_COUNT) -> List[AvailableSlot]:
    """Recommend the soonest slots."""
    return sorted(slots, key=lambda slot: slot.start)[:count]


def format_slot(start: datetime, end: datetime, timezone_name: str, locale: str = "en_US") -> str:
    tz = pytz.timezone(timezone_name)
    try:
        start_str = format_datetime(start, SLOT_DATE_FORMAT, tzinfo=tz, locale=locale)
        end_str = format_time(end, SLOT_TIME_FORMAT, tzinfo=tz, locale=locale)
    except (ValueError, LookupError):
        local_start, local_end = start.astimezone(tz), end.astimezone(tz)
        start_str = local_start.strftime("%a, %b %d, %I:%M %p")
        end_str = local_end.strftime("%I:%M %p")
    return f"{start_str} - {end_str}"


def to_graph_datetime(dt: datetime, timezone_name: str) -> str:
    """Naive local time string in the form Graph expects next to a timeZone field."""
    return dt.astimezone(pytz.timezone(timezone_name)).strftime("%Y-%m-%dT%H:%M:%S")


def extract_topic(response: str, user_query: str = "") -> str:
    combined = f"{user_query} {response}".lower()
    for keyword, topic in TOPICS.items():
        if keyword in combined:
            return topic
    return config.DEFAULT_TOPIC
