import itertools
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
import orjson
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse, Response

# Core service imports
from .core.cache_service import CachedResponse, ResponseCache
from .core.client import create_http_client
from .core.config import Settings, load_settings, log_settings, parse_args
from .core.constants import CACHE_AGE_HEADER
from .core.service import render_calendar_response

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger(__name__) # Get logger for this module
access_log = logging.getLogger("rapla_proxy.access")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Builds the FastAPI application.

    Args:
        settings: Settings to use. Defaults to the environment.
    """
    settings = settings or load_settings()

    # --- Lifespan Management ---
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Lifespan: Application startup sequence initiated.")
        logging.getLogger("rapla_proxy").setLevel(settings.log_level)
        log_settings(settings)

        app.state.http_client = create_http_client(timeout=settings.upstream_timeout)
        log.info("Lifespan startup: HTTPX client created.")

        app.state.cache = None
        if settings.cache_enabled:
            app.state.cache = ResponseCache(settings.cache_ttl, settings.cache_max_size)
        else:
            log.info("Lifespan startup: Response caching is DISABLED.")

        yield # Application runs here

        log.info("Lifespan: Application shutdown sequence initiated.")
        if not app.state.http_client.is_closed:
            await app.state.http_client.aclose()
            log.info("Lifespan shutdown: HTTPX client closed.")
        log.info("Lifespan: Application shutdown sequence complete.")

    app = FastAPI(
        title="Rapla iCal Proxy",
        description="Serves Rapla timetable pages as iCalendar feeds.",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    request_counter = itertools.count()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Writes one JSON line per request."""
        request_id = next(request_counter)
        start_time = time.perf_counter()
        response = await call_next(request)

        line = {
            "request_id": request_id,
            "status_code": response.status_code,
            "cached": CACHE_AGE_HEADER in response.headers,
            "processing_time": time.perf_counter() - start_time,
            "url": str(request.url),
        }
        try:
            access_log.info(orjson.dumps(line).decode())
        except Exception as e:
            log.debug(f"Failed to write access log line: {e}")
        return response

    @app.get("/health")
    async def health():
        """Returns a simple message indicating the proxy is running."""
        return {"message": "Rapla iCal proxy is running"}

    @app.get("/{full_path:path}", summary="Get a Rapla calendar as iCalendar", tags=["Calendar"])
    async def get_calendar(request: Request, full_path: str):
        """
        Resolves the upstream Rapla URL from the request, scrapes it and
        returns the calendar as text/calendar.

        The Rapla URL can either replace the proxy's host
        (/rapla/calendar?key=...&salt=...) or be appended to it
        (/https://rapla.dhbw.de/rapla/calendar?key=...&salt=...).
        """
        http_client: httpx.AsyncClient = request.app.state.http_client
        cache: Optional[ResponseCache] = request.app.state.cache
        path = request.url.path
        query_string = request.url.query

        async def render() -> CachedResponse:
            try:
                return await render_calendar_response(http_client, path, query_string)
            except Exception as e:
                log.error(f"Unexpected internal error while serving {path}", exc_info=True)
                return CachedResponse(
                    status_code=500,
                    body=orjson.dumps({"message": f"An unexpected internal server error occurred ({type(e).__name__})."}),
                    media_type="application/json",
                )

        if cache is None:
            rendered = await render()
            return Response(content=rendered.body, status_code=rendered.status_code, media_type=rendered.media_type)

        key = f"{path}?{query_string}" if query_string else path
        rendered, hit = await cache.get_or_compute(key, render)
        response = Response(
            content=rendered.body,
            status_code=rendered.status_code,
            media_type=rendered.media_type,
            headers=rendered.headers,
        )
        if hit:
            response.headers[CACHE_AGE_HEADER] = str(cache.age_of(rendered))
        return response

    return app


app = create_app()


def run(argv: Optional[List[str]] = None) -> None:
    """Command-line entry point: apply flag overrides and serve with uvicorn."""
    settings = parse_args(argv if argv is not None else sys.argv[1:])
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
