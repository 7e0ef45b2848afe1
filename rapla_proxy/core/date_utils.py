# rapla_proxy/core/date_utils.py
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

log = logging.getLogger(__name__)


def parse_unsigned(raw: str) -> int:
    """
    Parses a string of ASCII digits into an int.

    Unlike int(), this rejects signs, surrounding whitespace and underscores.

    Raises:
        ValueError: If `raw` is empty or contains anything but digits.
    """
    if not raw or not raw.isascii() or not raw.isdigit():
        raise ValueError(f"invalid digit found in string: '{raw}'")
    return int(raw)


def parse_day_month(token: str) -> Tuple[int, int]:
    """
    Parses a 'DD.MM.' token (the trailing period is optional) into (day, month).

    Args:
        token: The day/month token, e.g. '23.03.'.

    Returns:
        A tuple (day, month).

    Raises:
        ValueError: If the token does not consist of exactly two numeric parts.
    """
    parts = token.rstrip(".").split(".")
    if len(parts) != 2:
        raise ValueError(
            f"expected two elements when splitting '{token}' by dots, got {len(parts)}"
        )
    day = parse_unsigned(parts[0])
    month = parse_unsigned(parts[1])
    return day, month


def parse_clock_time(raw: str, default: Optional[time] = None) -> time:
    """
    Parses an 'HH:MM' wall-clock time.

    Args:
        raw: The time string.
        default: Returned when `raw` is empty. If None, an empty string is an error.

    Returns:
        The parsed time.

    Raises:
        ValueError: If `raw` is not a valid HH:MM time.
    """
    if not raw and default is not None:
        log.debug(f"Empty time token, using default {default:%H:%M}")
        return default
    return datetime.strptime(raw, "%H:%M").time()


def add_days(start: date, days: int) -> date:
    """
    Returns `start` shifted by `days` days.

    Raises:
        OverflowError: If the result falls outside the supported date range.
    """
    return start + timedelta(days=days)
