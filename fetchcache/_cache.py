from __future__ import annotations

import itertools
import logging
import os
import typing as tp

import anyio
import httpx

from ._client import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_DELAY, RevalidationClient
from ._config import PASS_THROUGH_OPTIONS, CacheConfig, load_config
from ._controller import (
    conditional_headers,
    has_conditional_headers,
    is_expired,
    not_modified_headers,
    validators_match,
)
from ._keygen import generate_key
from ._serializers import Metadata
from ._storages import AsyncFileStorage
from ._synchronization import SingleFlight
from ._utils import BaseClock, Clock

logger = logging.getLogger("fetchcache")

__all__ = ("CacheContext", "default_context", "fetch", "set_parameter")

_console_handler: tp.Optional[logging.Handler] = None


def enable_console_logging() -> None:
    """Attaches a console handler to the library logger, once per process."""
    global _console_handler

    if _console_handler is not None:
        return

    _console_handler = logging.StreamHandler()
    _console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(_console_handler)
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)


class RequestLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Prefixes progress messages with the id of the request they belong to."""

    def __init__(self, request_id: int, to_console: bool) -> None:
        super().__init__(logger, {"request_id": request_id})
        self.request_id = request_id
        self._level = logging.INFO if to_console else logging.DEBUG

    def process(self, msg: tp.Any, kwargs: tp.Any) -> tp.Tuple[tp.Any, tp.Any]:
        return f"{self.request_id} - {msg}", kwargs

    def progress(self, msg: str) -> None:
        self.log(self._level, msg)


class CacheContext:
    """
    A file cache in front of the network.

    The context owns everything that lives as long as the process: the
    configuration, the fetches in progress, the folders already reset
    and the request counter. Most programs use the shared instance
    returned by `default_context`.

    :param config: Default settings of every fetch, defaults to None
    :type config: tp.Optional[CacheConfig], optional
    :param client: Client used to reach the network, defaults to None
    :type client: tp.Optional[httpx.AsyncClient], optional
    :param clock: Source of the current time, defaults to None
    :type clock: tp.Optional[BaseClock], optional
    :param retry_delay: Bounds in seconds of the pause between two attempts, defaults to (2.0, 10.0)
    :type retry_delay: tp.Tuple[float, float], optional
    :param max_attempts: Number of retries after a network failure, defaults to 3
    :type max_attempts: int, optional
    """

    def __init__(
        self,
        config: tp.Optional[CacheConfig] = None,
        client: tp.Optional[httpx.AsyncClient] = None,
        clock: tp.Optional[BaseClock] = None,
        retry_delay: tp.Tuple[float, float] = DEFAULT_RETRY_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.config = config if config is not None else CacheConfig()
        self._clock = clock if clock is not None else Clock()
        self._client = RevalidationClient(client=client, retry_delay=retry_delay, max_attempts=max_attempts)
        self._single_flight = SingleFlight()
        self._reset_folders: tp.Set[str] = set()
        self._counter = itertools.count(1)
        self.started_at = self._clock.now()

    def set_parameter(self, name: str, value: tp.Any) -> None:
        """
        Changes a default setting for the following fetches.

        :raises ConfigError: If the name is unknown or the value invalid
        """
        self.config = self.config.merge(**{name: value})

    async def fetch(self, url: str, **options: tp.Any) -> httpx.Response:
        """
        Fetches a URL through the file cache.

        Cache options (`cache_folder`, `reset_cache`, `refresh`,
        `log_to_console` and their aliases) override the context settings
        for this call. `headers`, `signal` (an `anyio.Event` aborting the
        retries), `timeout`, `extensions`, `auth` and `follow_redirects` are
        forwarded to the network request.

        :param url: The URL to fetch
        :type url: str
        :return: The response, streamed from the cache folder
        :rtype: httpx.Response
        """
        forwarded = {name: options.pop(name) for name in PASS_THROUGH_OPTIONS if name in options}
        config = self.config.merge(**options)
        request_headers = dict(forwarded.pop("headers", None) or {})
        signal = forwarded.pop("signal", None)

        request_id = next(self._counter)
        if config.log_to_console:
            enable_console_logging()
        log = RequestLogger(request_id, to_console=config.log_to_console)
        log.progress(f"fetch {url}")

        storage = AsyncFileStorage(config.cache_folder, clock=self._clock)
        key = generate_key(url)

        folder = os.path.abspath(config.cache_folder)
        if config.reset_cache and folder not in self._reset_folders:
            self._reset_folders.add(folder)
            log.progress(f"reset cache folder {config.cache_folder}")
            await storage.reset_folder()

        await storage.ensure_folder()

        while True:
            pending = self._single_flight.get(url)
            if pending is None:
                break

            log.progress("wait for pending request")
            await pending.wait()

            metadata = await storage.read_metadata(key)
            if metadata is not None:
                log.progress("pending request over, return response from cache")
                return self._serve_from_cache(storage, key, url, metadata, request_headers, log, from_cache=True)
            # The pending fetch left nothing on disk, fetch the URL ourselves

        async with self._single_flight.lead(url):
            return await self._fetch(
                storage,
                key,
                url,
                config,
                request_headers,
                log,
                signal=signal,
                request_options=forwarded,
            )

    async def _fetch(
        self,
        storage: AsyncFileStorage,
        key: str,
        url: str,
        config: CacheConfig,
        request_headers: tp.Dict[str, str],
        log: RequestLogger,
        signal: tp.Optional[anyio.Event],
        request_options: tp.Dict[str, tp.Any],
    ) -> httpx.Response:
        metadata = await storage.read_metadata(key)

        if metadata is not None and not is_expired(metadata, config.refresh, self._clock.now(), self.started_at):
            log.progress("use cached version directly")
            return self._serve_from_cache(storage, key, url, metadata, request_headers, log, from_cache=True)

        caller_is_conditional = has_conditional_headers(request_headers)
        headers = dict(request_headers)
        if not caller_is_conditional:
            headers.update(conditional_headers(metadata))

        if has_conditional_headers(headers):
            log.progress("response in cache, send conditional request")
        else:
            log.progress("send regular request")

        response = await self._client.fetch_with_retry(
            url,
            headers=headers,
            signal=signal,
            on_retry=lambda exc: log.progress("fetch attempt failed"),
            **request_options,
        )

        if response.status_code == 304:
            if metadata is not None and (not caller_is_conditional or validators_match(request_headers, metadata)):
                log.progress("response in cache is still valid")
                refreshed = await storage.update_metadata(key, response.headers)
                if refreshed is not None:
                    return self._serve_from_cache(
                        storage, key, url, refreshed, request_headers, log, from_cache=True, revalidated=True
                    )

            log.progress("pass 304 through to cache-aware client")
            response.extensions.update(
                self._extensions(log, from_cache=False, revalidated=False, stored=False, received_at=None)
            )
            return response

        log.progress("save response to cache")
        metadata = await storage.write_entry(key, response.status_code, response.headers, response.aiter_raw())
        await response.aclose()
        return self._serve_from_cache(storage, key, url, metadata, request_headers, log, from_cache=False, stored=True)

    def _serve_from_cache(
        self,
        storage: AsyncFileStorage,
        key: str,
        url: str,
        metadata: Metadata,
        request_headers: tp.Dict[str, str],
        log: RequestLogger,
        from_cache: bool,
        revalidated: bool = False,
        stored: bool = False,
    ) -> httpx.Response:
        request = httpx.Request("GET", url, headers=request_headers)
        extensions = self._extensions(
            log, from_cache=from_cache, revalidated=revalidated, stored=stored, received_at=metadata.received_at
        )

        if has_conditional_headers(request_headers) and validators_match(request_headers, metadata):
            log.progress("return 304 to cache-aware client")
            return httpx.Response(
                status_code=304,
                headers=not_modified_headers(metadata),
                request=request,
                extensions=extensions,
            )

        log.progress("return response from cache")
        return httpx.Response(
            status_code=metadata.status,
            headers=list(metadata.headers.items()),
            stream=storage.read_body(key),
            request=request,
            extensions=extensions,
        )

    def _extensions(
        self,
        log: RequestLogger,
        from_cache: bool,
        revalidated: bool,
        stored: bool,
        received_at: tp.Optional[int],
    ) -> tp.Dict[str, tp.Any]:
        return {
            "fetchcache_from_cache": from_cache,
            "fetchcache_revalidated": revalidated,
            "fetchcache_stored": stored,
            "fetchcache_received_at": received_at,
            "fetchcache_request_id": log.request_id,
        }


_default_context: tp.Optional[CacheContext] = None


def default_context() -> CacheContext:
    """
    Returns the context shared by the module-level functions.

    It is created on first use, with its defaults read from `config.json`.
    """
    global _default_context

    if _default_context is None:
        _default_context = CacheContext(config=load_config())
    return _default_context


async def fetch(url: str, **options: tp.Any) -> httpx.Response:
    """Fetches a URL through the shared file cache, see `CacheContext.fetch`."""
    return await default_context().fetch(url, **options)


def set_parameter(name: str, value: tp.Any) -> None:
    """Changes a default setting of the shared file cache."""
    default_context().set_parameter(name, value)
