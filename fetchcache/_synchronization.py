from __future__ import annotations

import types
import typing as tp

import anyio

from ._exceptions import AbortError

__all__ = ("PendingFetch", "SingleFlight")


class PendingFetch:
    """Handle on a fetch in progress that other tasks can wait for."""

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._error: tp.Optional[BaseException] = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def set_done(self, error: tp.Optional[BaseException] = None) -> None:
        self._error = error
        self._event.set()

    async def wait(self) -> None:
        """
        Waits until the fetch completes.

        :raises BaseException: The error the fetch failed with, if any
        """
        await self._event.wait()
        if self._error is not None:
            raise self._error


class SingleFlight:
    """
    Tracks which URLs are being fetched.

    At most one `PendingFetch` exists per URL. The handle is registered
    and removed by `SingleFlight.lead`, and completed on both the success
    and the failure path.

    Example:
    ```python
        pending = single_flight.get(url)
        if pending is not None:
            await pending.wait()
        else:
            async with single_flight.lead(url):
                ...
    ```
    """

    def __init__(self) -> None:
        self._pending: tp.Dict[str, PendingFetch] = {}

    def get(self, url: str) -> tp.Optional[PendingFetch]:
        return self._pending.get(url)

    def __contains__(self, url: str) -> bool:
        return url in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def lead(self, url: str) -> _Leadership:
        if url in self._pending:
            raise RuntimeError(f"A fetch for {url} is already in progress")
        handle = PendingFetch()
        self._pending[url] = handle
        return _Leadership(self, url, handle)

    def _release(self, url: str, handle: PendingFetch, error: tp.Optional[BaseException]) -> None:
        if self._pending.get(url) is handle:
            del self._pending[url]
        handle.set_done(error)


class _Leadership:
    def __init__(self, owner: SingleFlight, url: str, handle: PendingFetch) -> None:
        self._owner = owner
        self._url = url
        self.handle = handle

    async def __aenter__(self) -> PendingFetch:
        return self.handle

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        if isinstance(exc_value, anyio.get_cancelled_exc_class()):
            # waiters must not re-raise the cancellation of another task
            exc_value = AbortError(f"The pending fetch for {self._url} was cancelled.")
        self._owner._release(self._url, self.handle, exc_value)
