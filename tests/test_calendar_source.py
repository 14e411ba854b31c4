"""Tests for the iCloud CalDAV calendar source."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import MONDAY
from northstar.domain.scheduling.calendar_source import (
    CalendarSourceError,
    ICloudCalendarSource,
    ICloudSession,
    parse_busy_intervals,
)

CALENDAR_URL = "https://caldav.icloud.com/123/calendars/work/"

WINDOW_START = datetime(2025, 3, 10, tzinfo=timezone.utc)
WINDOW_END = WINDOW_START + timedelta(days=1)


def ics(*events: list[str]) -> str:
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//EN"]
    for event in events:
        lines.append("BEGIN:VEVENT")
        lines.extend(event)
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


TIMED = ["UID:timed", "SUMMARY:Client call", "DTSTART:20250310T100000Z", "DTEND:20250310T110000Z"]
ALL_DAY = ["UID:allday", "SUMMARY:Holiday", "DTSTART;VALUE=DATE:20250310", "DTEND;VALUE=DATE:20250311"]
CANCELLED = [
    "UID:cancelled",
    "SUMMARY:Dropped",
    "STATUS:CANCELLED",
    "DTSTART:20250310T120000Z",
    "DTEND:20250310T130000Z",
]
TRANSPARENT = [
    "UID:free",
    "SUMMARY:Focus (free)",
    "TRANSP:TRANSPARENT",
    "DTSTART:20250310T140000Z",
    "DTEND:20250310T150000Z",
]
WEEKLY = [
    "UID:weekly",
    "SUMMARY:Team sync",
    "DTSTART:20250303T150000Z",
    "DTEND:20250303T153000Z",
    "RRULE:FREQ=WEEKLY;COUNT=4",
]
FLOATING = ["UID:floating", "SUMMARY:Lunch", "DTSTART:20250310T130000", "DTEND:20250310T133000"]
OTHER_DAY = ["UID:tomorrow", "SUMMARY:Later", "DTSTART:20250311T100000Z", "DTEND:20250311T110000Z"]


def multistatus(*documents: str) -> str:
    responses = "".join(
        f"""<d:response>
      <d:href>{CALENDAR_URL}event-{i}.ics</d:href>
      <d:propstat>
        <d:prop><c:calendar-data>{doc}</c:calendar-data></d:prop>
        <d:status>HTTP/1.1 200 OK</d:status>
      </d:propstat>
    </d:response>"""
        for i, doc in enumerate(documents)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">'
        f"{responses}</d:multistatus>"
    )


def make_session(**overrides) -> ICloudSession:
    values = {
        "user_id": 1,
        "apple_id": "owner@icloud.com",
        "app_password": "abcd-efgh-ijkl-mnop",
        "calendar_href": CALENDAR_URL,
    }
    values.update(overrides)
    return ICloudSession(**values)


def starts(intervals) -> list[datetime]:
    return sorted(i.start for i in intervals)


class TestParseBusyIntervals:
    def test_timed_event(self):
        intervals = parse_busy_intervals(ics(TIMED), WINDOW_START, WINDOW_END, timezone.utc)
        assert len(intervals) == 1
        assert intervals[0].start == datetime(2025, 3, 10, 10, tzinfo=timezone.utc)
        assert intervals[0].end == datetime(2025, 3, 10, 11, tzinfo=timezone.utc)
        assert intervals[0].summary == "Client call"

    def test_non_blocking_events_are_skipped(self):
        intervals = parse_busy_intervals(
            ics(ALL_DAY, CANCELLED, TRANSPARENT), WINDOW_START, WINDOW_END, timezone.utc
        )
        assert intervals == []

    def test_recurring_event_is_expanded_into_window(self):
        intervals = parse_busy_intervals(ics(WEEKLY), WINDOW_START, WINDOW_END, timezone.utc)
        assert starts(intervals) == [datetime(2025, 3, 10, 15, tzinfo=timezone.utc)]
        assert intervals[0].end - intervals[0].start == timedelta(minutes=30)

    def test_excluded_occurrence_is_skipped(self):
        daily = [
            "UID:daily",
            "SUMMARY:Standup",
            "DTSTART:20250301T080000Z",
            "DTEND:20250301T081500Z",
            "RRULE:FREQ=DAILY",
            "EXDATE:20250310T080000Z",
        ]
        intervals = parse_busy_intervals(ics(daily), WINDOW_START, WINDOW_END, timezone.utc)
        assert intervals == []

    def test_moved_occurrence_replaces_master(self):
        master = [
            "UID:series",
            "SUMMARY:Review",
            "DTSTART:20250301T090000Z",
            "DTEND:20250301T093000Z",
            "RRULE:FREQ=DAILY",
        ]
        moved = [
            "UID:series",
            "SUMMARY:Review (moved)",
            "RECURRENCE-ID:20250310T090000Z",
            "DTSTART:20250310T120000Z",
            "DTEND:20250310T123000Z",
        ]
        intervals = parse_busy_intervals(ics(master, moved), WINDOW_START, WINDOW_END, timezone.utc)
        assert starts(intervals) == [datetime(2025, 3, 10, 12, tzinfo=timezone.utc)]

    def test_floating_time_uses_business_timezone(self):
        intervals = parse_busy_intervals(ics(FLOATING), WINDOW_START, WINDOW_END, timezone.utc)
        assert starts(intervals) == [datetime(2025, 3, 10, 13, tzinfo=timezone.utc)]

    def test_events_outside_window_are_dropped(self):
        intervals = parse_busy_intervals(ics(OTHER_DAY), WINDOW_START, WINDOW_END, timezone.utc)
        assert intervals == []

    def test_malformed_event_does_not_hide_others(self):
        good = ["UID:good", "SUMMARY:Board meeting", "DTSTART:20250310T150000Z", "DTEND:20250310T160000Z"]
        date_end = ["UID:bad", "SUMMARY:Broken", "DTSTART:20250310T090000Z", "DTEND;VALUE=DATE:20250311"]

        intervals = parse_busy_intervals(ics(good, date_end), WINDOW_START, WINDOW_END, timezone.utc)

        assert len(intervals) == 1
        assert intervals[0].start == datetime(2025, 3, 10, 15, tzinfo=timezone.utc)
        assert intervals[0].end == datetime(2025, 3, 10, 16, tzinfo=timezone.utc)


class TestICloudCalendarSource:
    @pytest.mark.asyncio
    async def test_fetch_busy_intervals_sends_calendar_query(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(207, text=multistatus(ics(TIMED), ics(WEEKLY, ALL_DAY)))

        source = ICloudCalendarSource(transport=httpx.MockTransport(handler))
        intervals = await source.fetch_busy_intervals(make_session(), MONDAY, timezone.utc)

        assert starts(intervals) == [
            datetime(2025, 3, 10, 10, tzinfo=timezone.utc),
            datetime(2025, 3, 10, 15, tzinfo=timezone.utc),
        ]
        request = seen[0]
        assert request.method == "REPORT"
        assert str(request.url) == CALENDAR_URL
        assert request.headers["Depth"] == "1"
        assert request.headers["Authorization"].startswith("Basic ")
        body = request.content.decode()
        assert 'start="20250310T000000Z"' in body
        assert 'end="20250311T000000Z"' in body

    @pytest.mark.asyncio
    async def test_malformed_event_keeps_other_calendars(self):
        broken = ["UID:bad", "SUMMARY:Broken", "DTSTART:20250310T090000Z", "DTEND;VALUE=DATE:20250311"]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(207, text=multistatus(ics(broken), ics(TIMED)))

        source = ICloudCalendarSource(transport=httpx.MockTransport(handler))
        intervals = await source.fetch_busy_intervals(make_session(), MONDAY, timezone.utc)

        assert starts(intervals) == [datetime(2025, 3, 10, 10, tzinfo=timezone.utc)]

    @pytest.mark.asyncio
    async def test_busy_calendars_take_precedence(self):
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(207, text=multistatus())

        busy = ("https://caldav.icloud.com/123/calendars/a/", "https://caldav.icloud.com/123/calendars/b/")
        source = ICloudCalendarSource(transport=httpx.MockTransport(handler))
        await source.fetch_busy_intervals(make_session(busy_calendar_urls=busy), MONDAY)

        assert sorted(urls) == sorted(busy)

    @pytest.mark.asyncio
    async def test_failed_report_raises(self):
        source = ICloudCalendarSource(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        with pytest.raises(CalendarSourceError):
            await source.fetch_busy_intervals(make_session(), MONDAY)

    @pytest.mark.asyncio
    async def test_session_without_calendars_returns_nothing(self):
        source = ICloudCalendarSource(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        assert await source.fetch_busy_intervals(make_session(calendar_href=None), MONDAY) == []

    @pytest.mark.asyncio
    async def test_verify_credentials(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PROPFIND"
            return httpx.Response(207, text=multistatus())

        source = ICloudCalendarSource(transport=httpx.MockTransport(handler))
        assert await source.verify_credentials(make_session()) is True

    @pytest.mark.asyncio
    async def test_rejected_credentials(self):
        source = ICloudCalendarSource(transport=httpx.MockTransport(lambda r: httpx.Response(401)))
        assert await source.verify_credentials(make_session()) is False

    @pytest.mark.asyncio
    async def test_unexpected_propfind_status_raises(self):
        source = ICloudCalendarSource(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        with pytest.raises(CalendarSourceError):
            await source.verify_credentials(make_session())
