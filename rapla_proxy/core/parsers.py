# rapla_proxy/core/parsers.py
import html as html_lib
import inspect
import logging
import os
from datetime import date, time
from functools import lru_cache
from typing import Any, Dict, List, Optional

import soupsieve
from bs4 import BeautifulSoup, Tag
from bs4.formatter import HTMLFormatter

# Use relative imports for components within the 'rapla_proxy.core' package
from .constants import (
    DEFAULT_END_TIME, DEFAULT_START_TIME, DETAILS_LINE_BREAK, EVENT_CELL_CLASS, HTML_PARSER,
    SELECTOR_CELL, SELECTOR_EVENT_DETAILS, SELECTOR_PERSON, SELECTOR_RESOURCE,
    SELECTOR_ROW, SELECTOR_TITLE, SELECTOR_WEEK, SELECTOR_WEEK_HEADER,
    SELECTOR_WEEK_NUMBER, SEPARATOR_CLASS_PREFIX, TIME_RANGE_SEPARATOR,
)
from .date_utils import add_days, parse_clock_time, parse_day_month, parse_unsigned
from .diagnostics import LoggingDiagnostics
from ..models.models import Calendar, Event

log = logging.getLogger(__name__)

BREADCRUMB_CATEGORY = "parser"
MIDNIGHT = time(0, 0)

# Used when the caller doesn't inject a sink of its own
_default_diagnostics = LoggingDiagnostics(log)

_HTML_ESCAPES = {"&": "&amp;", "\u00a0": "&nbsp;", "<": "&lt;", ">": "&gt;"}


def _escape_html5(text: str) -> str:
    return "".join(_HTML_ESCAPES.get(char, char) for char in text)


# Serializes like an HTML5 serializer: void tags as <br>, U+00A0 as &nbsp;
_INNER_HTML_FORMATTER = HTMLFormatter(entity_substitution=_escape_html5, void_element_close_prefix=None)


# --- Errors ---

class ParseError(Exception):
    """
    Base exception for scraping failures. Every failure aborts the whole parse.

    The `kind` discriminator and `to_dict()` payload are meant for humans
    triaging upstream markup changes, not as a stable wire contract.
    """
    kind = "generic"

    def __init__(self, message: str, html_content: Optional[str] = None):
        super().__init__(message)
        self.message = message
        # The problematic HTML, kept for debugging without re-fetching
        self.html_content = html_content

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.html_content is not None:
            payload["html"] = self.html_content
        return payload


class GenericParseError(ParseError):
    """A derived value (e.g. date arithmetic) turned out invalid."""
    kind = "generic"


class SelectionError(ParseError):
    """A required element is missing, most likely the upstream markup was restructured."""
    kind = "selection"

    def __init__(self, message: str, selector: str, location: str):
        super().__init__(message)
        self.selector = selector
        self.location = location

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["selector"] = self.selector
        payload["location"] = self.location
        return payload


class ContentError(ParseError):
    """An element exists but its content doesn't match the expected format."""
    kind = "content"

    def __init__(self, message: str, html_content: str):
        super().__init__(message, html_content=html_content)


# --- Selector helpers ---

@lru_cache(maxsize=None)
def _compiled(query: str) -> soupsieve.SoupSieve:
    return soupsieve.compile(query)


def _select(element: Tag, query: str) -> List[Tag]:
    return _compiled(query).select(element)


def _caller_location() -> str:
    # Two frames up: past the _select_* helper, into the parsing rule
    frame = inspect.currentframe()
    try:
        caller = frame.f_back.f_back if frame and frame.f_back else None
        if caller is None:
            return "unknown"
        return f"{os.path.basename(caller.f_code.co_filename)}:{caller.f_lineno}"
    finally:
        del frame


def _selection_error(query: str, location: str, diagnostics: LoggingDiagnostics) -> SelectionError:
    diagnostics.breadcrumb(BREADCRUMB_CATEGORY, "Used query selector", {"selector": query})
    message = "Query selector didn't yield any elements"
    diagnostics.breadcrumb(BREADCRUMB_CATEGORY, message, {"location": location})
    return SelectionError(message, selector=query, location=location)


def _select_first(element: Tag, query: str, diagnostics: LoggingDiagnostics) -> Tag:
    found = _compiled(query).select_one(element)
    if found is None:
        raise _selection_error(query, _caller_location(), diagnostics)
    return found


def _select_last(element: Tag, query: str, diagnostics: LoggingDiagnostics) -> Tag:
    found = _select(element, query)
    if not found:
        raise _selection_error(query, _caller_location(), diagnostics)
    return found[-1]


def _inner_html(element: Tag) -> str:
    return element.decode_contents(formatter=_INNER_HTML_FORMATTER)


def _decoded_inner_html(element: Tag) -> str:
    return html_lib.unescape(_inner_html(element))


def _content_error(message: str, html_content: str, diagnostics: LoggingDiagnostics) -> ContentError:
    diagnostics.breadcrumb(BREADCRUMB_CATEGORY, message, {"html": html_content})
    return ContentError(message, html_content=html_content)


def _generic_error(message: str, diagnostics: LoggingDiagnostics) -> GenericParseError:
    diagnostics.breadcrumb(BREADCRUMB_CATEGORY, message)
    return GenericParseError(message)


# --- Calendar Parser ---

def parse_calendar(
    html: str, start_year: int, diagnostics: Optional[LoggingDiagnostics] = None
) -> Calendar:
    """
    Parses a Rapla week-view page into a Calendar.

    The page never states the year explicitly. Week blocks are visited in
    document order and a week numbered 1 after the first block means a year
    boundary was crossed.

    Args:
        html: The raw HTML document.
        start_year: The calendar year the first week block belongs to.
        diagnostics: Optional breadcrumb sink. Defaults to logging only.

    Returns:
        A Calendar with events in document order.

    Raises:
        ParseError: On the first structural or content failure. No partial
                    results are returned.
    """
    diagnostics = diagnostics or _default_diagnostics
    soup = BeautifulSoup(html, HTML_PARSER)

    name = _select_first(soup, SELECTOR_TITLE, diagnostics).get_text().strip()

    year = start_year
    events: List[Event] = []
    for idx, week_element in enumerate(_select(soup, SELECTOR_WEEK)):
        week_number_html = _inner_html(_select_first(week_element, SELECTOR_WEEK_NUMBER, diagnostics))
        tokens = week_number_html.split()
        if len(tokens) < 2:
            raise _content_error(
                f"Malformed calendar week number in week #{idx + 1}: missing second element after splitting by space",
                week_number_html,
                diagnostics,
            )
        try:
            week_number = parse_unsigned(tokens[1])
        except ValueError as e:
            raise _content_error(
                f"Malformed calendar week number in week #{idx + 1}: {e}", week_number_html, diagnostics
            ) from e

        if week_number == 1 and idx > 0:
            year += 1
            diagnostics.breadcrumb(
                BREADCRUMB_CATEGORY, "Calendar week 1 encountered, advancing year", {"week": idx + 1, "year": year}
            )

        events.extend(parse_week(week_element, year, diagnostics))

    log.info(f"Parsing finished. Extracted {len(events)} events from calendar '{name}'.")
    return Calendar(name=name, events=tuple(events))


def parse_week(
    week_element: Tag, year: int, diagnostics: Optional[LoggingDiagnostics] = None
) -> List[Event]:
    """
    Extracts the events of a single week block.

    Each row is scanned left to right. Separator cells advance the day
    counter, event cells get the date Monday + counter.

    Args:
        week_element: The <tbody> of one week table.
        year: The year the week's Monday belongs to.
        diagnostics: Optional breadcrumb sink.

    Returns:
        The week's events in row/cell order.

    Raises:
        ParseError: If the header or any cell is malformed.
    """
    diagnostics = diagnostics or _default_diagnostics
    week_header = _inner_html(_select_first(week_element, SELECTOR_WEEK_HEADER, diagnostics))

    header_tokens = week_header.split()
    if len(header_tokens) < 2:
        raise _content_error(
            "Couldn't find day and month in week header: missing second element after splitting by space",
            week_header,
            diagnostics,
        )
    # Usually 'Mo 23.03.', some views prefix the week label ('KW 12 23.03.')
    day_month = next((token for token in header_tokens[1:] if "." in token), header_tokens[1])
    try:
        start_day, start_month = parse_day_month(day_month)
    except ValueError as e:
        raise _content_error(f"Couldn't parse day and month in week header: {e}", week_header, diagnostics) from e

    try:
        monday = date(year, start_month, start_day)
    except ValueError as e:
        raise _content_error(
            f"Week start date '{start_day}.{start_month}.{year}' derived from week header appears to be an invalid date",
            week_header,
            diagnostics,
        ) from e

    events: List[Event] = []
    for row in _select(week_element, SELECTOR_ROW)[1:]:
        day_index = 0

        for column in _select(row, SELECTOR_CELL):
            classes = column.get("class") or []
            if not classes:
                raise _content_error("Expected element to have a class", str(column), diagnostics)

            # No upper bound on day_index, extra separators run past Sunday
            css_class = classes[0]
            if css_class.startswith(SEPARATOR_CLASS_PREFIX):
                day_index += 1
            if css_class != EVENT_CELL_CLASS:
                continue

            try:
                event_date = add_days(monday, day_index)
            except OverflowError as e:
                raise _generic_error("Overflowed date value, something is very wrong", diagnostics) from e

            events.append(parse_event_details(column, event_date, diagnostics))

    log.debug(f"Week starting {monday.isoformat()}: {len(events)} events")
    return events


def parse_event_details(
    element: Tag, event_date: date, diagnostics: Optional[LoggingDiagnostics] = None
) -> Event:
    """
    Extracts a single event from a `week_block` cell.

    The link content is '<start>&nbsp;-<end><br><title><br>...'. Rooms and
    people are read from their own tagged spans.

    Args:
        element: The event cell.
        event_date: The date the cell was assigned by its position.
        diagnostics: Optional breadcrumb sink.

    Returns:
        The parsed Event.

    Raises:
        ParseError: If the time range or title is missing or malformed.
    """
    diagnostics = diagnostics or _default_diagnostics
    # We pick the last element to ensure we have the innermost match.
    details = _inner_html(_select_last(element, SELECTOR_EVENT_DETAILS, diagnostics))
    details_split = details.split(DETAILS_LINE_BREAK)

    times_raw = details_split[0]
    times_split = times_raw.split(TIME_RANGE_SEPARATOR)
    if len(times_split) < 2:
        raise _content_error("Missing event end time", times_raw, diagnostics)
    start_raw, end_raw = times_split[0], times_split[1]

    # Full-day entries leave out the times but keep the dash.
    try:
        start = parse_clock_time(start_raw, default=time(*DEFAULT_START_TIME))
    except ValueError as e:
        raise _content_error(f"Couldn't parse event start time: {e}", times_raw, diagnostics) from e
    try:
        end = parse_clock_time(end_raw, default=time(*DEFAULT_END_TIME))
    except ValueError as e:
        raise _content_error(f"Couldn't parse event end time: {e}", times_raw, diagnostics) from e

    # An explicit 00:00 start is displayed as 08:00 on the website.
    if start_raw and start == MIDNIGHT:
        diagnostics.breadcrumb(BREADCRUMB_CATEGORY, "Normalized midnight start time", {"html": times_raw})
        start = time(*DEFAULT_START_TIME)

    if len(details_split) < 2:
        raise _content_error("Couldn't find event title", details, diagnostics)
    title = html_lib.unescape(details_split[1])

    resources = [_decoded_inner_html(resource) for resource in _select(element, SELECTOR_RESOURCE)]
    # The room is listed last
    location = resources[-1] if resources else None
    description = ", ".join(resources) if resources else None

    persons = [_decoded_inner_html(person) for person in _select(element, SELECTOR_PERSON)]
    organizer = ", ".join(persons) if persons else None

    return Event(
        date=event_date,
        start=start,
        end=end,
        title=title,
        location=location,
        organizer=organizer,
        description=description,
    )
