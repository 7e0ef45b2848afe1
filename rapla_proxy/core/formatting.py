# rapla_proxy/core/formatting.py
import logging
from datetime import datetime, timedelta

from icalendar import Calendar as ICalendar
from icalendar import Event as ICalEvent
from icalendar import Timezone, TimezoneDaylight, TimezoneStandard

from .constants import CALENDAR_TIMEZONE
from ..models.models import Calendar, Event

log = logging.getLogger(__name__)

ICS_DATETIME_FORMAT = "%Y%m%dT%H%M00"


def _berlin_timezone() -> Timezone:
    """Builds the VTIMEZONE block for Europe/Berlin (CET/CEST)."""
    daylight = TimezoneDaylight()
    daylight.add("dtstart", datetime(1970, 3, 29, 2, 0, 0))
    daylight.add("tzoffsetfrom", timedelta(hours=1))
    daylight.add("tzoffsetto", timedelta(hours=2))
    daylight.add("tzname", "CEST")
    daylight.add("rrule", {"freq": "YEARLY", "bymonth": 3, "byday": "-1SU"})

    standard = TimezoneStandard()
    standard.add("dtstart", datetime(1970, 10, 25, 3, 0, 0))
    standard.add("tzoffsetfrom", timedelta(hours=2))
    standard.add("tzoffsetto", timedelta(hours=1))
    standard.add("tzname", "CET")
    standard.add("rrule", {"freq": "YEARLY", "bymonth": 10, "byday": "-1SU"})

    timezone = Timezone()
    timezone.add("tzid", CALENDAR_TIMEZONE)
    timezone.add_component(daylight)
    timezone.add_component(standard)
    return timezone


def event_uid(event: Event) -> str:
    """UID derived from start time and title, stable across refreshes."""
    start = datetime.combine(event.date, event.start).strftime(ICS_DATETIME_FORMAT)
    return f"{start}_{event.title.replace(' ', '-')}"


def event_to_ics(event: Event) -> ICalEvent:
    start = datetime.combine(event.date, event.start)
    end = datetime.combine(event.date, event.end)

    ics_event = ICalEvent()
    ics_event.add("uid", event_uid(event))
    ics_event.add("dtstamp", start)
    ics_event.add("dtstart", start, parameters={"TZID": CALENDAR_TIMEZONE})
    ics_event.add("dtend", end, parameters={"TZID": CALENDAR_TIMEZONE})
    ics_event.add("summary", event.title)

    if event.location is not None:
        ics_event.add("location", event.location)
    if event.organizer is not None:
        ics_event.add("organizer", event.organizer)
    if event.description is not None:
        ics_event.add("description", event.description)

    return ics_event


def calendar_to_ics(calendar: Calendar) -> ICalendar:
    """
    Renders a scraped Calendar as an iCalendar object.

    Times are wall-clock times in Europe/Berlin, so every DTSTART/DTEND
    references the embedded VTIMEZONE instead of being converted to UTC.
    """
    icalendar = ICalendar()
    icalendar.add("version", "2.0")
    icalendar.add("prodid", calendar.name)
    icalendar.add("x-wr-calname", calendar.name)
    icalendar.add_component(_berlin_timezone())

    for event in calendar.events:
        icalendar.add_component(event_to_ics(event))

    log.debug(f"Rendered {len(calendar.events)} events for calendar '{calendar.name}'")
    return icalendar


def format_ics(calendar: Calendar) -> bytes:
    """Serializes a Calendar to iCalendar bytes."""
    return calendar_to_ics(calendar).to_ical()
