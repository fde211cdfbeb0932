from __future__ import annotations

import calendar
import time
import typing as tp
from email.utils import parsedate_tz
from typing import AsyncIterator, Iterable

T = tp.TypeVar("T")


class BaseClock:
    def now(self) -> int:
        """Current wall-clock time in integer milliseconds since the epoch."""
        raise NotImplementedError()


class Clock(BaseClock):
    def now(self) -> int:
        return float_seconds_to_int_milliseconds(time.time())


def float_seconds_to_int_milliseconds(seconds: float) -> int:
    return int(seconds * 1000)


def parse_date(date: str) -> tp.Optional[int]:
    """
    Parses an HTTP date into seconds since the epoch.

    Returns None when the value is not a valid date.
    """
    try:
        parsed = parsedate_tz(date)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    timestamp = calendar.timegm(parsed[:6])
    if parsed[9]:
        timestamp -= parsed[9]
    return timestamp


async def make_async_iterator(
    iterable: Iterable[bytes],
) -> AsyncIterator[bytes]:
    for item in iterable:
        yield item


def filter_mapping(mapping: tp.Mapping[str, T], keys_to_exclude: tp.Iterable[str]) -> tp.Dict[str, T]:
    """
    Drops header-like keys from a mapping, ignoring their case.

    Example:
    ```python
        headers = {"Content-Type": "text/html", "Transfer-Encoding": "chunked"}
        filter_mapping(headers, ["transfer-encoding"])
        # {"Content-Type": "text/html"}
    ```
    """
    exclude_set = {k.lower() for k in keys_to_exclude}
    return {k: v for k, v in mapping.items() if k.lower() not in exclude_set}


def keep_mapping(mapping: tp.Mapping[str, T], keys_to_keep: tp.Iterable[str]) -> tp.Dict[str, T]:
    """Inverse of `filter_mapping`: keeps only the listed keys, case-insensitively."""
    keep_set = {k.lower() for k in keys_to_keep}
    return {k: v for k, v in mapping.items() if k.lower() in keep_set}
