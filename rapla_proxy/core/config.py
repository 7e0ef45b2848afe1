# rapla_proxy/core/config.py
import argparse
import logging
import os
from dataclasses import dataclass, replace
from typing import List, Optional

from dotenv import load_dotenv

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    host: str = "127.0.0.1"
    port: int = 8080
    cache_enabled: bool = False
    cache_ttl: int = 3600 # seconds
    cache_max_size: int = 100 # megabytes
    upstream_timeout: float = 30.0
    log_level: str = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """
    Reads settings from the environment (and a .env file, if present).

    Raises:
        ValueError: If a numeric variable is not a valid number.
    """
    load_dotenv()
    defaults = Settings()
    return Settings(
        host=os.getenv("RAPLA_HOST", defaults.host),
        port=int(os.getenv("RAPLA_PORT", defaults.port)),
        cache_enabled=_env_bool("RAPLA_CACHE_ENABLED", defaults.cache_enabled),
        cache_ttl=int(os.getenv("RAPLA_CACHE_TTL", defaults.cache_ttl)),
        cache_max_size=int(os.getenv("RAPLA_CACHE_MAX_SIZE", defaults.cache_max_size)),
        upstream_timeout=float(os.getenv("RAPLA_UPSTREAM_TIMEOUT", defaults.upstream_timeout)),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )


def parse_args(argv: Optional[List[str]] = None, base: Optional[Settings] = None) -> Settings:
    """
    Applies command-line overrides on top of environment settings.

    Args:
        argv: Arguments to parse. Defaults to sys.argv[1:].
        base: Settings to override. Defaults to load_settings().
    """
    base = base or load_settings()
    parser = argparse.ArgumentParser(
        prog="rapla-proxy",
        description="Serve Rapla timetable pages as iCalendar feeds.",
    )
    parser.add_argument("--host", default=base.host, help="Address to listen on.")
    parser.add_argument("--port", type=int, default=base.port, help="Port to listen on.")
    parser.add_argument(
        "--cache", dest="cache_enabled", action=argparse.BooleanOptionalAction,
        default=base.cache_enabled, help="Cache responses in memory.",
    )
    parser.add_argument("--cache-ttl", type=int, default=base.cache_ttl, help="Cache time to live in seconds.")
    parser.add_argument("--cache-max-size", type=int, default=base.cache_max_size, help="Cache max size in megabytes.")
    parser.add_argument(
        "--upstream-timeout", type=float, default=base.upstream_timeout, help="Upstream request timeout in seconds."
    )
    parser.add_argument("--log-level", default=base.log_level, help="Logging level (DEBUG, INFO, ...).")
    args = parser.parse_args(argv)

    return replace(
        base,
        host=args.host,
        port=args.port,
        cache_enabled=args.cache_enabled,
        cache_ttl=args.cache_ttl,
        cache_max_size=args.cache_max_size,
        upstream_timeout=args.upstream_timeout,
        log_level=args.log_level.upper(),
    )


def log_settings(settings: Settings) -> None:
    log.info(f"Listening on address:    {settings.host}:{settings.port}")
    log.info(f"Caching enabled:         {settings.cache_enabled}")
    log.info(f"Cache time to live:      {settings.cache_ttl}s")
    log.info(f"Cache max size:          {settings.cache_max_size}mb")
    log.info(f"Upstream timeout:        {settings.upstream_timeout}s")
