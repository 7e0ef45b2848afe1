from datetime import date, time

from icalendar import Calendar as ICalendar

from rapla_proxy.core.formatting import calendar_to_ics, event_uid, format_ics
from rapla_proxy.models.models import Calendar, Event


def _event(**overrides) -> Event:
    fields = dict(date=date(2025, 3, 24), start=time(9, 0), end=time(12, 15), title="Theoretische Informatik I")
    fields.update(overrides)
    return Event(**fields)


def test_event_uid():
    assert event_uid(_event()) == "20250324T090000_Theoretische-Informatik-I"


def test_format_ics_structure():
    calendar = Calendar(
        name="Rapla Kalender TINF24B",
        events=[_event(location="Raum 204B", organizer="Müller, Anna", description="TINF24B, Raum 204B")],
    )
    ics = format_ics(calendar)

    assert isinstance(ics, bytes)
    text = ics.decode("utf-8")
    assert text.startswith("BEGIN:VCALENDAR")
    assert "VERSION:2.0" in text
    assert "PRODID:Rapla Kalender TINF24B" in text
    assert "X-WR-CALNAME:Rapla Kalender TINF24B" in text
    assert "BEGIN:VTIMEZONE" in text
    assert "TZID:Europe/Berlin" in text
    assert "DTSTART;TZID=Europe/Berlin:20250324T090000" in text
    assert "DTEND;TZID=Europe/Berlin:20250324T121500" in text
    assert "UID:20250324T090000_Theoretische-Informatik-I" in text


def test_format_ics_round_trips_through_icalendar():
    calendar = Calendar(
        name="Kalender",
        events=[
            _event(location="Raum 204B", organizer="Müller, Anna", description="TINF24B, Raum 204B"),
            _event(date=date(2025, 3, 25), title="Programmieren"),
        ],
    )
    parsed = ICalendar.from_ical(format_ics(calendar))
    events = parsed.walk("VEVENT")

    assert [str(e["SUMMARY"]) for e in events] == ["Theoretische Informatik I", "Programmieren"]
    assert str(events[0]["LOCATION"]) == "Raum 204B"
    assert str(events[0]["DESCRIPTION"]) == "TINF24B, Raum 204B"
    assert "Müller, Anna" in str(events[0]["ORGANIZER"])
    assert "LOCATION" not in events[1]
    assert "ORGANIZER" not in events[1]
    assert "DESCRIPTION" not in events[1]


def test_empty_calendar_keeps_timezone():
    ical = calendar_to_ics(Calendar(name="Leer", events=[]))
    assert ical.walk("VEVENT") == []
    assert len(ical.walk("VTIMEZONE")) == 1
