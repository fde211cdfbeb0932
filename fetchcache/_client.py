from __future__ import annotations

import logging
import random
import typing as tp

import anyio
import httpx

from ._exceptions import AbortError, NetworkError
from ._utils import filter_mapping

logger = logging.getLogger("fetchcache.client")

__all__ = ("RevalidationClient", "DEFAULT_RETRY_DELAY", "DEFAULT_MAX_ATTEMPTS", "REQUEST_OPTIONS", "SEND_OPTIONS")

DEFAULT_RETRY_DELAY = (2.0, 10.0)
DEFAULT_MAX_ATTEMPTS = 3

# Keyword arguments of `httpx.AsyncClient.build_request` and `httpx.AsyncClient.send`
REQUEST_OPTIONS = ("timeout", "extensions")
SEND_OPTIONS = ("auth", "follow_redirects")

# Framing headers that no longer describe a fully buffered body
UNFORWARDED_HEADERS = ("transfer-encoding",)


class RevalidationClient:
    """
    Sends GET requests to the origin, retrying transient failures.

    :param client: The client used to reach the network. A short-lived
        `httpx.AsyncClient` following redirects is opened per request when omitted, defaults to None
    :type client: tp.Optional[httpx.AsyncClient], optional
    :param retry_delay: Bounds in seconds of the randomized pause between attempts, defaults to (2.0, 10.0)
    :type retry_delay: tp.Tuple[float, float], optional
    :param max_attempts: Number of retries after the first failure, defaults to 3
    :type max_attempts: int, optional
    """

    def __init__(
        self,
        client: tp.Optional[httpx.AsyncClient] = None,
        retry_delay: tp.Tuple[float, float] = DEFAULT_RETRY_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 0:
            raise ValueError("The number of attempts should not be negative")
        self._client = client
        self._retry_delay = retry_delay
        self._max_attempts = max_attempts

    async def fetch_with_retry(
        self,
        url: str,
        headers: tp.Optional[tp.Mapping[str, str]] = None,
        signal: tp.Optional[anyio.Event] = None,
        on_retry: tp.Optional[tp.Callable[[Exception], None]] = None,
        **request_options: tp.Any,
    ) -> httpx.Response:
        """
        Fetches a URL, retrying up to `max_attempts` more times on transport errors.

        The returned response holds the raw, still encoded body in memory.
        A 304 is returned like any other status; deciding what it means is
        left to the caller. `request_options` may hold any of `REQUEST_OPTIONS`
        and `SEND_OPTIONS`, which are handed over to `httpx`.

        :raises AbortError: If `signal` is set before an attempt or while waiting to retry
        :raises NetworkError: If every attempt failed
        """
        unknown = set(request_options) - set(REQUEST_OPTIONS + SEND_OPTIONS)
        if unknown:
            raise TypeError(f"Unexpected request options: {', '.join(sorted(unknown))}")

        remaining_attempts = self._max_attempts

        while True:
            if signal is not None and signal.is_set():
                raise AbortError(f"The request to {url} was aborted.")

            try:
                return await self._send(url, headers or {}, request_options)
            except httpx.TransportError as exc:
                if remaining_attempts <= 0:
                    raise NetworkError(f"Could not fetch {url}: {exc!r}") from exc
                remaining_attempts -= 1
                logger.debug(f"Fetching {url} failed ({exc!r}), {remaining_attempts + 1} attempt(s) left.")
                if on_retry is not None:
                    on_retry(exc)

            await self._backoff(signal)

    async def _backoff(self, signal: tp.Optional[anyio.Event]) -> None:
        delay = random.uniform(*self._retry_delay)
        if signal is None:
            await anyio.sleep(delay)
            return

        with anyio.move_on_after(delay):
            await signal.wait()

    async def _send(
        self, url: str, headers: tp.Mapping[str, str], request_options: tp.Mapping[str, tp.Any]
    ) -> httpx.Response:
        if self._client is None:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                return await self._send_with(client, url, headers, request_options)
        return await self._send_with(self._client, url, headers, request_options)

    async def _send_with(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: tp.Mapping[str, str],
        request_options: tp.Mapping[str, tp.Any],
    ) -> httpx.Response:
        build_options = {name: value for name, value in request_options.items() if name in REQUEST_OPTIONS}
        send_options = {name: value for name, value in request_options.items() if name in SEND_OPTIONS}

        request = client.build_request("GET", url, headers=dict(headers), **build_options)
        response = await client.send(request, stream=True, **send_options)
        try:
            # `aiter_raw` refuses responses the transport already read, the stream does not
            stream = tp.cast(httpx.AsyncByteStream, response.stream)
            raw = b"".join([chunk async for chunk in stream])
        finally:
            await response.aclose()

        return httpx.Response(
            status_code=response.status_code,
            headers=filter_mapping(dict(response.headers.items()), UNFORWARDED_HEADERS),
            stream=httpx.ByteStream(raw),
            request=request,
            extensions={key: value for key, value in response.extensions.items() if key == "http_version"},
        )
