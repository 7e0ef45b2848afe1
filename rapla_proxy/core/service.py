import logging
from typing import Any, Dict, Optional, Union

import httpx
import orjson

# Core module imports (using relative paths)
from .cache_service import CachedResponse
from .client import RaplaClientError, fetch_rapla_html
from .diagnostics import RecordingDiagnostics
from .formatting import format_ics
from .parsers import ParseError, parse_calendar
from .resolver import ResolverError, UpstreamUrl, resolve_upstream_url

# Model import
from ..models.api_models import ProxyErrorResponse, UpstreamInfo
from ..models.models import Calendar

# Setup module logger
log = logging.getLogger(__name__)

ICS_MEDIA_TYPE = "text/calendar"
JSON_MEDIA_TYPE = "application/json"
UNRESOLVABLE_MESSAGE = "Error: Could not determine upstream URL, check your request URL"


async def fetch_and_parse_calendar(client: httpx.AsyncClient, upstream: UpstreamUrl) -> Calendar:
    """
    Fetches an upstream calendar page and scrapes it.

    Args:
        client: The shared httpx client.
        upstream: The resolved upstream URL and start year.

    Returns:
        The scraped Calendar.

    Raises:
        RaplaClientError: If the page could not be fetched.
        ParseError: If the page could not be scraped.
    """
    html = await fetch_rapla_html(client, upstream.url)
    diagnostics = RecordingDiagnostics(log)
    try:
        return parse_calendar(html, upstream.start_year, diagnostics)
    except ParseError as e:
        trail = "; ".join(crumb.message for crumb in diagnostics.breadcrumbs)
        log.error(f"Failed to parse {upstream.url.split('?')[0]} ({e.kind}): {e}. Breadcrumbs: {trail}")
        raise


def _error_response(
    status_code: int,
    message: str,
    details: Optional[Union[str, Dict[str, Any]]] = None,
    upstream: Optional[UpstreamInfo] = None,
) -> CachedResponse:
    body = ProxyErrorResponse(message=message, details=details, upstream=upstream)
    return CachedResponse(
        status_code=status_code,
        body=orjson.dumps(body.model_dump(exclude_none=True)),
        media_type=JSON_MEDIA_TYPE,
    )


async def render_calendar_response(
    client: httpx.AsyncClient, path: str, query_string: str = ""
) -> CachedResponse:
    """
    Runs the whole pipeline for one request: resolve, fetch, parse, serialize.

    Every failure is turned into a response here so that it can be cached
    like a success.

    Args:
        client: The shared httpx client.
        path: The request path.
        query_string: The raw request query string.

    Returns:
        The response to send (ICS on success, JSON or plain text on failure).
    """
    try:
        upstream = resolve_upstream_url(path, query_string)
    except ResolverError:
        return CachedResponse(status_code=400, body=UNRESOLVABLE_MESSAGE.encode(), media_type="text/plain")

    try:
        calendar = await fetch_and_parse_calendar(client, upstream)
    except RaplaClientError as e:
        upstream_info = UpstreamInfo(url=upstream.url, status_code=e.status_code)
        if e.status_code is not None:
            # Propagate whatever issue upstream is having
            return _error_response(e.status_code, "upstream returned bad status code", upstream=upstream_info)
        return _error_response(502, "couldn't connect to upstream", details=str(e), upstream=upstream_info)
    except ParseError as e:
        return _error_response(
            500,
            "couldn't parse HTML returned by upstream",
            details=e.to_dict(),
            upstream=UpstreamInfo(url=upstream.url, status_code=200),
        )

    return CachedResponse(status_code=200, body=format_ics(calendar), media_type=ICS_MEDIA_TYPE)
