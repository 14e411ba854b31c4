"""
iCloud Calendar Source
Reads busy intervals from iCloud calendars over CalDAV
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

import httpx
from dateutil.rrule import rruleset, rrulestr
from icalendar import Calendar
from lxml import etree
from pydantic import ValidationError

from ...config import EXTERNAL_CALENDAR_TIMEOUT, ICLOUD_CALDAV_URL
from .schemas import ExternalBusyInterval

logger = logging.getLogger(__name__)

CALDAV_NS = "urn:ietf:params:xml:ns:caldav"

PROPFIND_PRINCIPAL = """<?xml version="1.0" encoding="UTF-8"?>
<d:propfind xmlns:d="DAV:">
  <d:prop><d:current-user-principal/></d:prop>
</d:propfind>"""

CALENDAR_QUERY = """<?xml version="1.0" encoding="UTF-8"?>
<c:calendar-query xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop><c:calendar-data/></d:prop>
  <c:filter>
    <c:comp-filter name="VCALENDAR">
      <c:comp-filter name="VEVENT">
        <c:time-range start="{start}" end="{end}"/>
      </c:comp-filter>
    </c:comp-filter>
  </c:filter>
</c:calendar-query>"""


class CalendarSourceError(Exception):
    """Raised when iCloud cannot be queried"""


@dataclass(frozen=True)
class ICloudSession:
    """Credentials and calendar selection for one user's iCloud account"""

    user_id: int
    apple_id: str
    app_password: str
    calendar_href: Optional[str] = None
    busy_calendar_urls: tuple[str, ...] = field(default_factory=tuple)

    @property
    def calendar_urls(self) -> tuple[str, ...]:
        if self.busy_calendar_urls:
            return self.busy_calendar_urls
        return (self.calendar_href,) if self.calendar_href else ()


def _caldav_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _localize(value: datetime, tz: tzinfo) -> datetime:
    """Floating iCalendar times are read in the business timezone"""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def _as_list(prop) -> list:
    if prop is None:
        return []
    return prop if isinstance(prop, list) else [prop]


def _exdates(component, tz: tzinfo) -> list[datetime]:
    values = []
    for prop in _as_list(component.get("EXDATE")):
        for entry in prop.dts:
            if isinstance(entry.dt, datetime):
                values.append(_localize(entry.dt, tz))
    return values


# Raised by icalendar and dateutil on malformed properties and rules
MALFORMED_EVENT_ERRORS = (ValueError, TypeError, AttributeError, KeyError)


def _event_occurrences(
    component,
    overridden: dict[str, set],
    window_start: datetime,
    window_end: datetime,
    tz: tzinfo,
) -> list[tuple[datetime, datetime]]:
    """(start, end) pairs of one blocking VEVENT inside the window; raises on malformed data"""
    if str(component.get("STATUS", "")).upper() == "CANCELLED":
        return []
    if str(component.get("TRANSP", "")).upper() == "TRANSPARENT":
        return []

    dtstart_prop = component.get("DTSTART")
    if dtstart_prop is None:
        raise ValueError("event has no DTSTART")
    start = dtstart_prop.dt
    if not isinstance(start, datetime):
        # All-day events do not block appointments
        return []
    start = _localize(start, tz)

    if component.get("DTEND") is not None:
        end = component.get("DTEND").dt
        if not isinstance(end, datetime):
            raise ValueError(f"DTEND {end!r} is a date but DTSTART has a time")
        duration = _localize(end, tz) - start
    elif component.get("DURATION") is not None:
        duration = component.get("DURATION").dt
    else:
        duration = timedelta(0)

    if component.get("RRULE") is not None and component.get("RECURRENCE-ID") is None:
        rules = rruleset()
        rules.rrule(rrulestr(component.get("RRULE").to_ical().decode(), dtstart=start))
        for excluded in _exdates(component, tz):
            rules.exdate(excluded)
        for replaced in overridden.get(str(component.get("UID", "")), ()):
            rules.exdate(replaced)
        occurrences = rules.between(window_start - duration, window_end, inc=True)
    else:
        occurrences = [start]

    pairs = []
    for occurrence in occurrences:
        occurrence_end = occurrence + duration
        if occurrence >= window_end or occurrence_end < window_start:
            continue
        if duration and occurrence_end == window_start:
            continue
        pairs.append((occurrence, occurrence_end))
    return pairs


def parse_busy_intervals(
    calendar_data: str,
    window_start: datetime,
    window_end: datetime,
    tz: tzinfo,
) -> list[ExternalBusyInterval]:
    """
    Extract busy intervals overlapping [window_start, window_end) from one
    iCalendar document.

    All-day, cancelled and transparent (free) events are skipped. Recurring
    events are expanded into the window; overridden occurrences are taken
    from their RECURRENCE-ID instance instead of the master rule. A malformed
    event is dropped with a warning and the rest of the document still counts.
    """
    cal = Calendar.from_ical(calendar_data)
    events = [c for c in cal.walk() if c.name == "VEVENT"]

    overridden: dict[str, set] = {}
    for component in events:
        if component.get("RECURRENCE-ID") is None:
            continue
        recurrence_id = component.get("RECURRENCE-ID").dt
        if isinstance(recurrence_id, datetime):
            overridden.setdefault(str(component.get("UID", "")), set()).add(_localize(recurrence_id, tz))

    intervals: list[ExternalBusyInterval] = []
    for component in events:
        summary = str(component.get("SUMMARY", ""))
        try:
            occurrences = _event_occurrences(component, overridden, window_start, window_end, tz)
        except MALFORMED_EVENT_ERRORS as e:
            logger.warning(f"⚠️ Skipping malformed event {summary!r}: {e}")
            continue

        for start, end in occurrences:
            try:
                intervals.append(ExternalBusyInterval(start=start, end=end, summary=summary or None))
            except ValidationError as e:
                logger.warning(f"⚠️ Dropping malformed busy interval {summary!r}: {e}")

    return intervals


class ICloudCalendarSource:
    """CalDAV client for the iCloud calendars of a connected account"""

    def __init__(
        self,
        base_url: str = ICLOUD_CALDAV_URL,
        timeout: float = EXTERNAL_CALENDAR_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self, session: ICloudSession) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            auth=(session.apple_id, session.app_password),
            timeout=self.timeout,
            transport=self.transport,
        )

    async def verify_credentials(self, session: ICloudSession) -> bool:
        """Check that iCloud accepts the Apple ID and app-specific password"""
        async with self._client(session) as client:
            response = await client.request(
                "PROPFIND",
                f"{self.base_url}/",
                content=PROPFIND_PRINCIPAL,
                headers={"Depth": "0", "Content-Type": "application/xml; charset=utf-8"},
            )

        if response.status_code in (401, 403):
            logger.warning(f"⚠️ iCloud rejected credentials for {session.apple_id}")
            return False
        if response.status_code != 207:
            raise CalendarSourceError(f"Unexpected PROPFIND status {response.status_code}")
        logger.info(f"✅ iCloud credentials verified for {session.apple_id}")
        return True

    async def _query_calendar(
        self,
        client: httpx.AsyncClient,
        calendar_url: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[str]:
        body = CALENDAR_QUERY.format(
            start=_caldav_timestamp(window_start), end=_caldav_timestamp(window_end)
        )
        response = await client.request(
            "REPORT",
            calendar_url,
            content=body,
            headers={"Depth": "1", "Content-Type": "application/xml; charset=utf-8"},
        )
        if response.status_code != 207:
            raise CalendarSourceError(
                f"CalDAV REPORT on {calendar_url} failed with status {response.status_code}"
            )

        root = etree.fromstring(response.content)
        return [node.text for node in root.iter(f"{{{CALDAV_NS}}}calendar-data") if node.text]

    async def fetch_busy_intervals(
        self,
        session: ICloudSession,
        day: date,
        tz: tzinfo = timezone.utc,
    ) -> list[ExternalBusyInterval]:
        """Busy intervals across the session's busy calendars for one day"""
        calendar_urls = session.calendar_urls
        if not calendar_urls:
            return []

        window_start = datetime.combine(day, time(0), tzinfo=tz)
        window_end = window_start + timedelta(days=1)

        async with self._client(session) as client:
            documents_per_calendar = await asyncio.gather(
                *(self._query_calendar(client, url, window_start, window_end) for url in calendar_urls)
            )

        intervals: list[ExternalBusyInterval] = []
        for documents in documents_per_calendar:
            for document in documents:
                try:
                    intervals.extend(parse_busy_intervals(document, window_start, window_end, tz))
                except MALFORMED_EVENT_ERRORS as e:
                    logger.warning(f"⚠️ Skipping unparseable calendar object: {e}")

        logger.info(
            f"📅 Fetched {len(intervals)} busy intervals from {len(calendar_urls)} iCloud calendar(s) for {day}"
        )
        return intervals
