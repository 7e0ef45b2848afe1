# rapla_proxy/core/constants.py

# --- Upstream ---
DEFAULT_UPSTREAM_HOST = "rapla.dhbw.de"
# TODO: Add "rapla-ravensburg.dhbw.de" once that instance supports the 'pages' query parameter.
UPSTREAM_HOST_ALLOWLIST = (DEFAULT_UPSTREAM_HOST,)
# Number of weeks requested per page and the default look-back window.
# These don't need to be exact.
UPSTREAM_PAGES = 104 # ~two years
DEFAULT_LOOKBACK_DAYS = 365

# --- HTTP Headers ---
# Default headers for upstream requests, mimicking a browser
DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

# --- Parsing Constants ---
# HTML5 tree building inserts the implied <tbody> the week selector relies on
HTML_PARSER = "html5lib"

# CSS selectors consumed from the Rapla week view. These mirror the upstream
# markup and must only change when the upstream format does.
SELECTOR_TITLE = "title"
SELECTOR_WEEK = "div.calendar > table.week_table > tbody"
SELECTOR_WEEK_NUMBER = "th.week_number"
SELECTOR_WEEK_HEADER = "tr > td.week_header > nobr"
SELECTOR_ROW = "tr"
SELECTOR_CELL = "td"
# Sometimes there is an extra <span class="link"> wrapper around the content.
SELECTOR_EVENT_DETAILS = ":is(a, span.link)"
SELECTOR_RESOURCE = "span.resource"
SELECTOR_PERSON = "span.person"

SEPARATOR_CLASS_PREFIX = "week_separatorcell"
EVENT_CELL_CLASS = "week_block"

# Literal markers in the serialized event details
DETAILS_LINE_BREAK = "<br>"
TIME_RANGE_SEPARATOR = "&nbsp;-"

# "Full day" entries leave out start and/or end time
DEFAULT_START_TIME = (8, 0)
DEFAULT_END_TIME = (18, 0)

# --- Calendar output ---
CALENDAR_TIMEZONE = "Europe/Berlin"

# --- Caching ---
CACHE_AGE_HEADER = "x-cache-age"
