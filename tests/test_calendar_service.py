from datetime import datetime
from unittest.mock import Mock

import pytest
import pytz

from conversation_manager.errors import CollaboratorError
from conversation_manager.types import BookingDetails
from services.calendar_service import CalendarService, create_event_description

NY = pytz.timezone("America/New_York")


@pytest.fixture
def client():
    return Mock()


@pytest.fixture
def service(client):
    return CalendarService(client=client)


def details(phone=None):
    return BookingDetails(
        employee_name="Sarah Johnson",
        employee_phone=phone,
        topic="Attendance Discussion",
        start=NY.localize(datetime(2025, 7, 1, 9, 0)),
        end=NY.localize(datetime(2025, 7, 1, 9, 30)),
    )


def test_mailbox_timezone_is_mapped_to_iana(service, client):
    client.get.return_value = {"timeZone": "Pacific Standard Time", "language": {"locale": "en-US"}}

    assert service.get_mailbox_timezone("manager@example.com") == "America/Los_Angeles"
    client.get.assert_called_once_with("/users/manager@example.com/mailboxSettings")


def test_client_timezone_skips_mailbox_lookup(service, client):
    assert service.resolve_manager_timezone("manager@example.com", "Europe/Helsinki") == "Europe/Helsinki"
    client.get.assert_not_called()


def test_utc_mailbox_falls_back_to_default(service, client, monkeypatch):
    monkeypatch.setattr("config.DEFAULT_TIMEZONE", "America/Denver")
    client.get.return_value = {"timeZone": "UTC"}

    assert service.resolve_manager_timezone("manager@example.com", "UTC") == "America/Denver"


def test_mailbox_error_falls_back_to_default(service, client, monkeypatch):
    monkeypatch.setattr("config.DEFAULT_TIMEZONE", "America/Denver")
    client.get.side_effect = CollaboratorError("Microsoft Graph timed out after 10s")

    assert service.resolve_manager_timezone("manager@example.com") == "America/Denver"


def test_available_slots_skip_busy_time(service, client):
    client.get.return_value = {"value": [
        {
            "subject": "Standup",
            "showAs": "busy",
            "start": {"dateTime": "2025-07-01T09:00:00", "timeZone": "America/New_York"},
            "end": {"dateTime": "2025-07-01T10:00:00", "timeZone": "America/New_York"},
        },
    ]}
    now = NY.localize(datetime(2025, 7, 1, 8, 0))

    slots = service.get_available_slots("manager@example.com", days_ahead=1,
                                        timezone_name="America/New_York", now=now)

    assert slots[0].start == NY.localize(datetime(2025, 7, 1, 10, 0))
    assert slots[0].formatted == "Tue, Jul 1, 10:00 AM - 10:30 AM"
    path = client.get.call_args.args[0]
    assert path == "/users/manager@example.com/calendar/calendarView"
    assert client.get.call_args.kwargs["headers"] == {"Prefer": 'outlook.timezone="America/New_York"'}


def test_available_slots_propagate_graph_errors(service, client):
    client.get.side_effect = CollaboratorError("Microsoft Graph request failed: 403")

    with pytest.raises(CollaboratorError):
        service.get_available_slots("manager@example.com")


def test_book_event(service, client):
    client.post.return_value = {"id": "evt-9"}

    result = service.book_event("manager@example.com", details("555-0100"), "America/New_York")

    assert result.success is True
    assert result.event_id == "evt-9"
    path, = client.post.call_args.args
    event = client.post.call_args.kwargs["json"]
    assert path == "/users/manager@example.com/calendar/events"
    assert event["subject"] == "Call: Sarah Johnson - Attendance Discussion"
    assert event["start"] == {"dateTime": "2025-07-01T09:00:00", "timeZone": "America/New_York"}
    assert event["reminderMinutesBeforeStart"] == 15
    assert "555-0100" in event["body"]["content"]


def test_book_event_failure_is_reported(service, client):
    client.post.side_effect = CollaboratorError("Microsoft Graph request failed: 403 Forbidden")

    result = service.book_event("manager@example.com", details())

    assert result.success is False
    assert "403 Forbidden" in result.error


def test_event_description_omits_missing_phone():
    description = create_event_description(details())

    assert "Sarah Johnson" in description
    assert "Phone" not in description
