import anyio
import pytest

from fetchcache import AbortError, SingleFlight


@pytest.mark.anyio
async def test_lead_registers_and_releases():
    single_flight = SingleFlight()

    async with single_flight.lead("https://example.com") as handle:
        assert "https://example.com" in single_flight
        assert single_flight.get("https://example.com") is handle
        assert not handle.done

    assert single_flight.get("https://example.com") is None
    assert len(single_flight) == 0
    assert handle.done


@pytest.mark.anyio
async def test_only_one_leader_per_url():
    single_flight = SingleFlight()

    async with single_flight.lead("https://example.com"):
        with pytest.raises(RuntimeError):
            single_flight.lead("https://example.com")

        async with single_flight.lead("https://example.org"):
            assert len(single_flight) == 2


@pytest.mark.anyio
async def test_waiters_are_woken_on_success():
    single_flight = SingleFlight()
    woken = []

    async def waiter() -> None:
        pending = single_flight.get("https://example.com")
        assert pending is not None
        await pending.wait()
        woken.append(True)

    async with anyio.create_task_group() as tg:
        async with single_flight.lead("https://example.com"):
            for _ in range(3):
                tg.start_soon(waiter)
            await anyio.sleep(0.01)
            assert woken == []

    assert woken == [True, True, True]


@pytest.mark.anyio
async def test_waiters_observe_the_failure():
    single_flight = SingleFlight()
    errors = []

    async def waiter() -> None:
        pending = single_flight.get("https://example.com")
        assert pending is not None
        try:
            await pending.wait()
        except ValueError as exc:
            errors.append(exc)

    async with anyio.create_task_group() as tg:
        try:
            async with single_flight.lead("https://example.com"):
                tg.start_soon(waiter)
                tg.start_soon(waiter)
                await anyio.sleep(0.01)
                raise ValueError("boom")
        except ValueError:
            pass

    assert len(errors) == 2
    assert all(str(error) == "boom" for error in errors)
    assert single_flight.get("https://example.com") is None


@pytest.mark.anyio
async def test_cancelled_leader_aborts_waiters():
    single_flight = SingleFlight()
    errors = []

    async def waiter() -> None:
        pending = single_flight.get("https://example.com")
        assert pending is not None
        try:
            await pending.wait()
        except AbortError as exc:
            errors.append(exc)

    async def leader() -> None:
        async with single_flight.lead("https://example.com"):
            await anyio.sleep(60)

    async with anyio.create_task_group() as tg:
        with anyio.move_on_after(0.05):
            async with anyio.create_task_group() as leader_group:
                leader_group.start_soon(leader)
                await anyio.sleep(0.01)
                tg.start_soon(waiter)
                await anyio.sleep(60)

    assert len(errors) == 1
    assert single_flight.get("https://example.com") is None
