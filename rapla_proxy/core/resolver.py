# rapla_proxy/core/resolver.py
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

from .constants import (DEFAULT_LOOKBACK_DAYS, DEFAULT_UPSTREAM_HOST,
                        UPSTREAM_HOST_ALLOWLIST, UPSTREAM_PAGES)

log = logging.getLogger(__name__)

# Query parameter pairs identifying a calendar, tried in order
CALENDAR_QUERY_SCHEMAS = (("key", "salt"), ("user", "file"))


class ResolverError(Exception):
    """Raised when no upstream URL can be derived from a request."""
    pass


@dataclass(frozen=True)
class UpstreamUrl:
    url: str
    # Calendar year of the first week on the fetched page
    start_year: int


@dataclass(frozen=True)
class UpstreamUrlComponents:
    host: str
    page: str
    query: Dict[str, str]
    cutoff_date: Optional[str] = None

    @classmethod
    def from_request_target(cls, path: str, query_string: str = "") -> "UpstreamUrlComponents":
        """
        Determines the upstream calendar from an incoming request.

        Tries, in this order:
          1. The request path treated as a full URL
             (e.g. /https://rapla.dhbw.de/rapla/calendar?key=...).
          2. The request itself (e.g. /rapla/calendar?key=...).

        Args:
            path: The request path.
            query_string: The raw query string, without the leading '?'.

        Returns:
            The resolved components, with the 'ical' page mapped to 'calendar'.

        Raises:
            ResolverError: If neither interpretation yields an allowed calendar URL.
        """
        components = None
        embedded = path.lstrip("/")
        if query_string:
            embedded = f"{embedded}?{query_string}"
        embedded_url = urlsplit(embedded)
        if embedded_url.scheme and embedded_url.netloc:
            components = cls.from_simple_url(embedded)

        if components is None:
            components = cls.from_simple_url(f"{path}?{query_string}" if query_string else path)

        if components is None:
            log.info(f"Could not resolve upstream URL for request path '{path}'")
            raise ResolverError("Could not determine upstream URL, check your request URL")

        if components.page == "ical":
            components = cls(
                host=components.host, page="calendar", query=components.query, cutoff_date=components.cutoff_date
            )
        return components

    @classmethod
    def from_simple_url(cls, url: str) -> Optional["UpstreamUrlComponents"]:
        """
        Extracts calendar components from a single URL (absolute or path-only).

        Returns:
            The components, or None if the host isn't allowed or required
            query parameters are missing.
        """
        parts = urlsplit(url)
        host = parts.hostname or DEFAULT_UPSTREAM_HOST
        if host not in UPSTREAM_HOST_ALLOWLIST:
            log.debug(f"Rejected upstream host '{host}'")
            return None

        if not parts.query:
            return None
        params = dict(parse_qsl(parts.query, keep_blank_values=True))

        query = None
        for schema in CALENDAR_QUERY_SCHEMAS:
            if all(name in params for name in schema):
                query = {name: params[name] for name in schema}
                break
        if query is None:
            return None

        page = params.get("page")
        if page is None:
            if not parts.path.startswith("/rapla/"):
                return None
            page = parts.path[len("/rapla/"):].rstrip("/")

        return cls(host=host, page=page, query=query, cutoff_date=params.get("cutoff_date"))

    def generate_url(self, now: Optional[datetime] = None) -> UpstreamUrl:
        """
        Builds the upstream URL covering ~two years starting at the cutoff date.

        Args:
            now: Reference time for the default cutoff. Defaults to the current UTC time.

        Returns:
            The upstream URL and the year of its first week.
        """
        cutoff = self._parse_cutoff_date()
        if cutoff is None:
            now = now or datetime.now(timezone.utc)
            cutoff = (now - timedelta(days=DEFAULT_LOOKBACK_DAYS)).date()

        url = (
            f"https://{self.host}/rapla/{self.page}"
            f"?day={cutoff.day}&month={cutoff.month}&year={cutoff.year}"
            f"&pages={UPSTREAM_PAGES}&{urlencode(self.query)}"
        )
        return UpstreamUrl(url=url, start_year=cutoff.year)

    def _parse_cutoff_date(self) -> Optional[date]:
        if not self.cutoff_date:
            return None
        try:
            return datetime.strptime(self.cutoff_date, "%Y-%m-%d").date()
        except ValueError:
            log.warning(f"Ignoring malformed cutoff_date '{self.cutoff_date}'")
            return None


def resolve_upstream_url(path: str, query_string: str = "", now: Optional[datetime] = None) -> UpstreamUrl:
    """Convenience wrapper: request target -> upstream URL and start year."""
    return UpstreamUrlComponents.from_request_target(path, query_string).generate_url(now)
