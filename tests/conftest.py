import os
import typing as tp

import httpx
import pytest

from fetchcache._utils import BaseClock


class ManualClock(BaseClock):
    def __init__(self, now: int = 1_704_067_200_000) -> None:
        self.current = now

    def now(self) -> int:
        return self.current

    def advance(self, milliseconds: int) -> None:
        self.current += milliseconds


class Origin:
    """Programmable fake server counting the requests it receives."""

    def __init__(self, responses: tp.Optional[tp.List[httpx.Response]] = None) -> None:
        self.responses = list(responses or [])
        self.requests: tp.List[httpx.Request] = []

    def add_responses(self, responses: tp.List[httpx.Response]) -> None:
        self.responses.extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def origin() -> Origin:
    return Origin()
