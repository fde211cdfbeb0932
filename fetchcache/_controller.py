import logging
import typing as tp

from ._exceptions import CacheControlError, ConfigError
from ._headers import parse_cache_control, parse_entity_tags, weak_match
from ._serializers import Metadata
from ._utils import keep_mapping, parse_date

logger = logging.getLogger("fetchcache.controller")

__all__ = (
    "Refresh",
    "REFRESH_MODES",
    "parse_refresh",
    "is_expired",
    "conditional_headers",
    "has_conditional_headers",
    "validators_match",
    "NOT_MODIFIED_HEADERS",
    "not_modified_headers",
)

Refresh = tp.Union[str, int]

REFRESH_MODES = ("force", "default", "once", "never")

CONDITIONAL_HEADERS = ("if-none-match", "if-modified-since")

# RFC 9110, Section 15.4.5
NOT_MODIFIED_HEADERS = ("cache-control", "content-location", "date", "etag", "expires", "last-modified", "vary")


def parse_refresh(value: tp.Any) -> Refresh:
    """
    Validates a refresh strategy.

    Accepts one of `REFRESH_MODES`, a non-negative number of seconds,
    or a string of digits as found in configuration files.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid refresh strategy: {value!r}.")

    if isinstance(value, int):
        if value < 0:
            raise ConfigError(f"The refresh period should not be negative, but got {value}.")
        return value

    if isinstance(value, str):
        if value in REFRESH_MODES:
            return value
        if value.isascii() and value.isdigit():
            return int(value)

    raise ConfigError(f"Invalid refresh strategy: {value!r}. Use one of {REFRESH_MODES} or a number of seconds.")


def is_expired(
    metadata: tp.Optional[Metadata],
    refresh: Refresh,
    now: int,
    started_at: int,
) -> bool:
    """
    Decides whether a stored entry must be fetched again.

    `now`, `started_at` and `metadata.received_at` are milliseconds
    since the epoch. Whenever the answer cannot be determined the
    entry is considered expired.
    """
    if metadata is None:
        return True

    if refresh == "force":
        return True

    if refresh == "never":
        return False

    if refresh == "once":
        return metadata.received_at < started_at

    if isinstance(refresh, int) and not isinstance(refresh, bool):
        return metadata.received_at + refresh * 1000 < now

    return _is_expired_per_http(metadata, now)


def _is_expired_per_http(metadata: Metadata, now: int) -> bool:
    headers = metadata.headers
    expires_verdict: tp.Optional[bool] = None

    if "expires" in headers:
        expires = parse_date(headers["expires"])
        if expires is None:
            logger.debug(
                f"Considering the entry as expired since its Expires header is invalid: {headers['expires']!r}"
            )
            return True
        if expires * 1000 < now:
            logger.debug("Considering the entry as expired since its Expires date is in the past.")
            return True
        expires_verdict = False

    if "cache-control" in headers:
        try:
            cache_control = parse_cache_control([headers["cache-control"]])
        except CacheControlError as exc:
            logger.debug(f"Considering the entry as expired since its Cache-Control header is invalid: {exc}")
            return True

        if cache_control.no_cache or cache_control.no_store:
            logger.debug("Considering the entry as expired since it must be revalidated on every use.")
            return True

        if cache_control.max_age is not None:
            expired = metadata.received_at + cache_control.max_age * 1000 < now
            logger.debug(
                f"Considering the entry as {'expired' if expired else 'valid'} "
                f"since its max-age of {cache_control.max_age} seconds "
                f"{'has' if expired else 'has not'} elapsed."
            )
            return expired

    if expires_verdict is not None:
        logger.debug("Considering the entry as valid since its Expires date is in the future.")
        return expires_verdict

    logger.debug("Considering the entry as expired since its freshness could not be determined.")
    return True


def has_conditional_headers(headers: tp.Mapping[str, str]) -> bool:
    return bool(keep_mapping(headers, CONDITIONAL_HEADERS))


def conditional_headers(metadata: tp.Optional[Metadata]) -> tp.Dict[str, str]:
    """
    Builds the precondition headers needed to revalidate a stored entry.

    See also (https://www.rfc-editor.org/rfc/rfc9111.html#name-sending-a-validation-reques)
    """
    if metadata is None:
        return {}

    precondition_headers = {}
    if "last-modified" in metadata.headers:
        precondition_headers["If-Modified-Since"] = metadata.headers["last-modified"]
    if "etag" in metadata.headers:
        precondition_headers["If-None-Match"] = metadata.headers["etag"]
    return precondition_headers


def validators_match(request_headers: tp.Mapping[str, str], metadata: Metadata) -> bool:
    """
    Evaluates the caller's preconditions against a stored entry.

    `If-None-Match` takes precedence over `If-Modified-Since`, as in
    RFC 9110, Section 13.2.2.
    """
    conditions = {name.lower(): value for name, value in keep_mapping(request_headers, CONDITIONAL_HEADERS).items()}

    if "if-none-match" in conditions:
        etag = metadata.headers.get("etag")
        tags = parse_entity_tags(conditions["if-none-match"])
        if tags == ["*"]:
            return True
        if etag is None:
            return False
        return any(weak_match(tag, etag) for tag in tags)

    if "if-modified-since" in conditions:
        last_modified = metadata.headers.get("last-modified")
        since = parse_date(conditions["if-modified-since"])
        if last_modified is None or since is None:
            return False
        modified = parse_date(last_modified)
        return modified is not None and modified <= since

    return False


def not_modified_headers(metadata: Metadata) -> tp.Dict[str, str]:
    return keep_mapping(metadata.headers, NOT_MODIFIED_HEADERS)
