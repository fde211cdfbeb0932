import gzip

import anyio
import httpx
import pytest

from fetchcache import AbortError, NetworkError, RevalidationClient


def flaky_transport(failures: int, calls: list):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) <= failures:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, content=b"ok")

    return httpx.MockTransport(handler)


@pytest.mark.anyio
async def test_fetch_sends_a_get_request():
    calls: list = []
    client = RevalidationClient(httpx.AsyncClient(transport=flaky_transport(0, calls)))

    response = await client.fetch_with_retry("https://example.com", headers={"If-None-Match": '"abc"'})

    assert response.status_code == 200
    assert await response.aread() == b"ok"
    assert calls[0].method == "GET"
    assert calls[0].headers["If-None-Match"] == '"abc"'


@pytest.mark.anyio
async def test_fetch_succeeds_on_the_last_attempt():
    calls: list = []
    retries: list = []
    client = RevalidationClient(
        httpx.AsyncClient(transport=flaky_transport(3, calls)), retry_delay=(0, 0), max_attempts=3
    )

    response = await client.fetch_with_retry("https://example.com", on_retry=retries.append)

    assert response.status_code == 200
    assert len(calls) == 4
    assert len(retries) == 3
    assert all(isinstance(exc, httpx.ConnectError) for exc in retries)


@pytest.mark.anyio
async def test_fetch_gives_up_when_attempts_are_exhausted():
    calls: list = []
    client = RevalidationClient(
        httpx.AsyncClient(transport=flaky_transport(4, calls)), retry_delay=(0, 0), max_attempts=3
    )

    with pytest.raises(NetworkError) as exc_info:
        await client.fetch_with_retry("https://example.com")

    assert len(calls) == 4
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    assert not isinstance(exc_info.value, AbortError)


@pytest.mark.anyio
async def test_error_statuses_are_not_retried():
    calls: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    client = RevalidationClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)), retry_delay=(0, 0))

    response = await client.fetch_with_retry("https://example.com")

    assert response.status_code == 503
    assert len(calls) == 1


@pytest.mark.anyio
async def test_abort_before_the_first_attempt():
    calls: list = []
    client = RevalidationClient(httpx.AsyncClient(transport=flaky_transport(0, calls)))
    signal = anyio.Event()
    signal.set()

    with pytest.raises(AbortError):
        await client.fetch_with_retry("https://example.com", signal=signal)

    assert calls == []


@pytest.mark.anyio
async def test_abort_interrupts_the_backoff():
    calls: list = []
    client = RevalidationClient(
        httpx.AsyncClient(transport=flaky_transport(10, calls)), retry_delay=(60, 60), max_attempts=3
    )
    signal = anyio.Event()

    errors: list = []

    async def abort_soon() -> None:
        await anyio.sleep(0.05)
        signal.set()

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(abort_soon)
            try:
                await client.fetch_with_retry("https://example.com", signal=signal)
            except AbortError as exc:
                errors.append(exc)

    assert len(errors) == 1
    assert len(calls) == 1


@pytest.mark.anyio
async def test_raw_body_is_kept_encoded():
    compressed = gzip.compress(b"hello")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=compressed)

    client = RevalidationClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    response = await client.fetch_with_retry("https://example.com")

    assert b"".join([chunk async for chunk in response.aiter_raw()]) == compressed


def test_negative_attempts_are_rejected():
    with pytest.raises(ValueError):
        RevalidationClient(max_attempts=-1)


@pytest.mark.anyio
async def test_already_read_responses_are_accepted():
    compressed = gzip.compress(b"hello")

    def handler(request: httpx.Request) -> httpx.Response:
        response = httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=compressed)
        assert response.is_stream_consumed
        return response

    client = RevalidationClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    response = await client.fetch_with_retry("https://example.com")

    assert await response.aread() == b"hello"
    assert response.headers["content-length"] == str(len(compressed))


@pytest.mark.anyio
async def test_request_options_are_forwarded():
    calls: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "https://example.com/new"})
        return httpx.Response(200, content=b"moved")

    client = RevalidationClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    response = await client.fetch_with_retry(
        "https://example.com/old", auth=("user", "pass"), follow_redirects=True, timeout=5
    )

    assert await response.aread() == b"moved"
    assert [str(request.url) for request in calls] == ["https://example.com/old", "https://example.com/new"]
    assert calls[0].headers["Authorization"] == "Basic dXNlcjpwYXNz"
    assert calls[0].extensions["timeout"] == {"connect": 5, "read": 5, "write": 5, "pool": 5}


@pytest.mark.anyio
async def test_unknown_request_options_are_rejected():
    client = RevalidationClient(httpx.AsyncClient(transport=flaky_transport(0, [])))

    with pytest.raises(TypeError):
        await client.fetch_with_retry("https://example.com", params={"a": "b"})
