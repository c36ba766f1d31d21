import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from conversation_manager.errors import CollaboratorError
from conversation_manager.types import AvailableSlot, BookingDetails, BookingResult
from helpers.booking_helpers import (
    find_available_slots,
    next_business_start,
    parse_busy_events,
    resolve_timezone,
    to_graph_datetime,
    to_iana,
    usable_timezone,
)
from services.graph_client import GraphClient, graph_client
import config

logger = logging.getLogger(__name__)

MAX_CALENDAR_EVENTS = 250


# --- BaseModel definitions for API responses ---
class MailboxSettings(BaseModel):
    model_config = ConfigDict(extra='allow')
    timeZone: Optional[str] = None


class CalendarService:
    """Availability and booking against the manager's Outlook calendar."""

    def __init__(self, client: Optional[GraphClient] = None):
        self.client = client or graph_client

    def get_mailbox_timezone(self, mailbox_id: str) -> Optional[str]:
        """
        The zone configured in the mailbox settings, as an IANA name.

        Returns None when the mailbox has no usable zone. Raises
        CollaboratorError when Graph cannot be reached.
        """
        data = self.client.get(f"/users/{mailbox_id}/mailboxSettings")
        settings = MailboxSettings(**data)
        return to_iana(settings.timeZone)

    def resolve_manager_timezone(self, mailbox_id: str, client_timezone: Optional[str] = None) -> str:
        """Client zone, then mailbox settings, then the configured default."""
        client_zone = usable_timezone(client_timezone)
        if client_zone:
            return client_zone

        mailbox_timezone = None
        try:
            mailbox_timezone = self.get_mailbox_timezone(mailbox_id)
        except CollaboratorError as e:
            logger.warning("Could not read mailbox timezone for %s: %s", mailbox_id, e)
        return resolve_timezone(mailbox_timezone)

    def get_available_slots(
        self,
        mailbox_id: str,
        days_ahead: int = config.CALENDAR_DAYS_AHEAD,
        timezone_name: str = config.DEFAULT_TIMEZONE,
        now: Optional[datetime] = None,
    ) -> List[AvailableSlot]:
        """
        Free 30-minute business-hour slots over the next days_ahead days.

        Raises:
            CollaboratorError: the calendar could not be read.
        """
        now = now or datetime.now(timezone.utc)
        start = next_business_start(now, timezone_name)
        end = start + timedelta(days=days_ahead)

        logger.info("Fetching calendar availability for %s (%s)", mailbox_id, timezone_name)
        data = self.client.get(
            f"/users/{mailbox_id}/calendar/calendarView",
            params={
                "startDateTime": start.isoformat(),
                "endDateTime": end.isoformat(),
                "$select": "subject,start,end,showAs",
                "$orderby": "start/dateTime",
                "$top": MAX_CALENDAR_EVENTS,
            },
            headers={"Prefer": f'outlook.timezone="{timezone_name}"'},
        )
        events = data.get("value", [])
        if len(events) >= MAX_CALENDAR_EVENTS:
            logger.warning("Hit the %d event limit; some busy time may be missing", MAX_CALENDAR_EVENTS)

        busy = parse_busy_events(events, timezone_name)
        slots = find_available_slots(start, end, busy, timezone_name)
        logger.info("Found %d events, %d free slots", len(events), len(slots))
        return slots

    def book_event(self, mailbox_id: str, details: BookingDetails,
                   timezone_name: str = config.DEFAULT_TIMEZONE) -> BookingResult:
        """Create the call on the manager's calendar with a reminder."""
        event = {
            "subject": details.subject,
            "body": {
                "contentType": "html",
                "content": create_event_description(details),
            },
            "start": {
                "dateTime": to_graph_datetime(details.start, timezone_name),
                "timeZone": timezone_name,
            },
            "end": {
                "dateTime": to_graph_datetime(details.end, timezone_name),
                "timeZone": timezone_name,
            },
            "isReminderOn": True,
            "reminderMinutesBeforeStart": details.reminder_minutes,
        }
        try:
            created = self.client.post(f"/users/{mailbox_id}/calendar/events", json=event) or {}
        except CollaboratorError as e:
            logger.error("Booking failed for %s: %s", mailbox_id, e)
            return BookingResult(success=False, error=str(e))

        logger.info("Booked '%s' on %s", details.subject, mailbox_id)
        return BookingResult(success=True, event_id=created.get("id"))


def create_event_description(details: BookingDetails) -> str:
    description = f"<p><strong>Employee:</strong> {details.employee_name}</p>"
    if details.employee_phone:
        description += f"<p><strong>Phone:</strong> {details.employee_phone}</p>"
    description += f"<p><strong>Topic:</strong> {details.topic}</p>"
    description += f"<hr><p><em>Scheduled by {config.ASSISTANT_NAME}</em></p>"
    return description



# Create a singleton instance
calendar_service = CalendarService()
