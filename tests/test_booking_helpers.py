from datetime import datetime

import pytest
import pytz

import config
from helpers.booking_helpers import (
    extract_topic,
    find_available_slots,
    format_slot,
    next_business_start,
    parse_busy_events,
    resolve_timezone,
    select_slots,
    to_graph_datetime,
    to_iana,
    usable_timezone,
)
from tests.conftest import make_slots

NY = pytz.timezone("America/New_York")


def ny(*args):
    return NY.localize(datetime(*args))


class TestTimezones:
    def test_windows_names_map_to_iana(self):
        assert to_iana("Pacific Standard Time") == "America/Los_Angeles"
        assert to_iana("Europe/Helsinki") == "Europe/Helsinki"
        assert to_iana(None) is None

    @pytest.mark.parametrize("name", [None, "", "UTC", "Etc/UTC", "Not/AZone"])
    def test_unusable_timezones(self, name):
        assert usable_timezone(name) is None

    def test_client_timezone_wins(self):
        assert resolve_timezone("America/Chicago", "Pacific Standard Time") == "America/Chicago"

    def test_utc_client_zone_falls_through_to_mailbox(self):
        assert resolve_timezone("UTC", "Pacific Standard Time") == "America/Los_Angeles"

    def test_default_when_nothing_is_usable(self):
        assert resolve_timezone(None, "UTC") == config.DEFAULT_TIMEZONE


class TestBusinessHours:
    def test_rounds_up_to_half_hour(self):
        assert next_business_start(ny(2025, 7, 2, 10, 10), "America/New_York") == ny(2025, 7, 2, 10, 30)
        assert next_business_start(ny(2025, 7, 2, 10, 40), "America/New_York") == ny(2025, 7, 2, 11, 0)

    def test_on_the_hour_is_kept(self):
        assert next_business_start(ny(2025, 7, 2, 14, 0), "America/New_York") == ny(2025, 7, 2, 14, 0)

    def test_early_morning_moves_to_opening(self):
        assert next_business_start(ny(2025, 7, 2, 6, 15), "America/New_York") == ny(2025, 7, 2, 9, 0)

    def test_friday_evening_moves_to_monday(self):
        assert next_business_start(ny(2025, 7, 4, 17, 10), "America/New_York") == ny(2025, 7, 7, 9, 0)

    def test_saturday_moves_to_monday(self):
        assert next_business_start(ny(2025, 7, 5, 11, 0), "America/New_York") == ny(2025, 7, 7, 9, 0)

    def test_converts_from_utc(self):
        now = pytz.utc.localize(datetime(2025, 7, 2, 14, 0))
        assert next_business_start(now, "America/New_York") == ny(2025, 7, 2, 10, 0)


class TestSlots:
    def test_busy_time_is_excluded(self):
        busy = [(ny(2025, 7, 1, 10, 0), ny(2025, 7, 1, 11, 0))]

        slots = find_available_slots(ny(2025, 7, 1, 9, 0), ny(2025, 7, 1, 12, 0), busy, "America/New_York")

        starts = [slot.start for slot in slots]
        assert starts == [ny(2025, 7, 1, 9, 0), ny(2025, 7, 1, 9, 30), ny(2025, 7, 1, 11, 0), ny(2025, 7, 1, 11, 30)]

    def test_back_to_back_meetings_do_not_block(self):
        busy = [(ny(2025, 7, 1, 8, 0), ny(2025, 7, 1, 9, 0))]

        slots = find_available_slots(ny(2025, 7, 1, 9, 0), ny(2025, 7, 1, 10, 0), busy, "America/New_York")

        assert len(slots) == 2

    def test_weekend_days_are_skipped(self):
        slots = find_available_slots(ny(2025, 7, 5, 0, 0), ny(2025, 7, 7, 10, 0), [], "America/New_York")

        assert [slot.start for slot in slots] == [ny(2025, 7, 7, 9, 0), ny(2025, 7, 7, 9, 30)]

    def test_full_working_day(self):
        slots = find_available_slots(ny(2025, 7, 1, 0, 0), ny(2025, 7, 1, 23, 0), [], "America/New_York")

        assert len(slots) == 16
        assert slots[-1].end == ny(2025, 7, 1, 17, 0)

    def test_select_slots_picks_soonest(self):
        slots = make_slots(5)

        selected = select_slots(list(reversed(slots)))

        assert [slot.formatted for slot in selected] == ["Tue, Jul 1, slot 1", "Tue, Jul 1, slot 2", "Tue, Jul 1, slot 3"]

    def test_format_slot(self):
        label = format_slot(ny(2025, 7, 1, 9, 0), ny(2025, 7, 1, 9, 30), "America/New_York")
        assert label == "Tue, Jul 1, 9:00 AM - 9:30 AM"


class TestGraphEvents:
    def test_parse_busy_events(self):
        events = [
            {
                "subject": "Standup",
                "showAs": "busy",
                "start": {"dateTime": "2025-07-01T14:00:00", "timeZone": "UTC"},
                "end": {"dateTime": "2025-07-01T14:30:00", "timeZone": "UTC"},
            },
            {
                "subject": "Focus time",
                "showAs": "free",
                "start": {"dateTime": "2025-07-01T15:00:00", "timeZone": "UTC"},
                "end": {"dateTime": "2025-07-01T16:00:00", "timeZone": "UTC"},
            },
            {
                "subject": "One-on-one",
                "showAs": "tentative",
                "start": {"dateTime": "2025-07-01T13:00:00", "timeZone": "Eastern Standard Time"},
                "end": {"dateTime": "2025-07-01T13:30:00", "timeZone": "Eastern Standard Time"},
            },
            {"subject": "Broken"},
        ]

        busy = parse_busy_events(events, "America/New_York")

        assert busy == [
            (ny(2025, 7, 1, 10, 0), ny(2025, 7, 1, 10, 30)),
            (ny(2025, 7, 1, 13, 0), ny(2025, 7, 1, 13, 30)),
        ]

    def test_to_graph_datetime(self):
        start = pytz.utc.localize(datetime(2025, 7, 1, 13, 0))
        assert to_graph_datetime(start, "America/New_York") == "2025-07-01T09:00:00"


def test_extract_topic():
    assert extract_topic("You should call them to discuss their attendance.") == "Attendance Discussion"
    assert extract_topic("Call them.", "They were tardy again") == "Tardiness Discussion"
    assert extract_topic("Call them.") == config.DEFAULT_TOPIC
