# rapla_proxy/core/client.py
import logging
from typing import Optional

import httpx
from httpx import Limits

from .constants import DEFAULT_HEADERS

log = logging.getLogger(__name__)


class RaplaClientError(Exception):
    """
    Raised when the upstream page could not be fetched.

    Attributes:
        url: The upstream URL that was requested.
        status_code: The upstream status code, or None if no response was received.
    """
    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def create_http_client(timeout: float = 30.0) -> httpx.AsyncClient:
    """
    Creates the shared httpx client used for upstream requests.
    The caller is responsible for closing it.
    """
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers=DEFAULT_HEADERS.copy(),
        limits=Limits(max_keepalive_connections=20, max_connections=100),
    )


async def fetch_rapla_html(client: httpx.AsyncClient, url: str) -> str:
    """
    Fetches the raw HTML of an upstream Rapla calendar page.

    Args:
        client: The shared httpx.AsyncClient.
        url: The fully-formed upstream URL.

    Returns:
        The response body as text.

    Raises:
        RaplaClientError: On non-2xx status, timeout or any other transport error.
                          The httpx exception is chained as __cause__.
    """
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        log.warning(f"Upstream returned HTTP {status_code} for {url.split('?')[0]}")
        raise RaplaClientError(f"HTTP error {status_code} fetching {url}", url, status_code) from e
    except httpx.TimeoutException as e:
        log.warning(f"Timeout fetching {url.split('?')[0]}")
        raise RaplaClientError(f"Timeout occurred fetching {url}", url) from e
    except httpx.RequestError as e:
        log.warning(f"Connection error fetching {url.split('?')[0]}: {type(e).__name__}")
        raise RaplaClientError(f"Connection error fetching {url}: {e}", url) from e

    log.debug(f"Fetched {len(response.text)} characters from {url.split('?')[0]}")
    return response.text
