import asyncio
import gc
import logging

import pytest

from lending_library.errors import AllSourcesFailed, DeadlineExceeded, NotFoundError
from lending_library.services.concurrency import first_success, with_timeout


async def settle(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


async def fail(delay=0.0):
    await asyncio.sleep(delay)
    raise NotFoundError("BookNotFound", "nothing here")


def test_with_timeout_returns_result_in_time():
    assert asyncio.run(with_timeout(settle("done", 0.01), 1000)) == "done"


def test_with_timeout_propagates_operation_error():
    with pytest.raises(NotFoundError):
        asyncio.run(with_timeout(fail(), 1000))


def test_with_timeout_does_not_cancel_late_operation():
    finished = []

    async def slow():
        await asyncio.sleep(0.1)
        finished.append(True)

    async def scenario():
        with pytest.raises(DeadlineExceeded) as exc:
            await with_timeout(slow(), 10, "slowOp")
        assert str(exc.value) == "slowOp timed out after 10 ms"
        await asyncio.sleep(0.2)

    asyncio.run(scenario())
    assert finished == [True]


def test_first_success_takes_fastest_success():
    name, result = asyncio.run(first_success({
        "slow": settle("slow", 0.2),
        "failing": fail(),
        "fast": settle("fast", 0.01),
    }))
    assert (name, result) == ("fast", "fast")


def test_first_success_cancels_losers():
    cancelled = []

    async def never():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    async def scenario():
        result = await first_success({"quick": settle(1), "never": never()})
        await asyncio.sleep(0)
        return result

    assert asyncio.run(scenario()) == ("quick", 1)
    assert cancelled == [True]


def test_first_success_prefers_source_order_on_ties():
    name, _ = asyncio.run(first_success({"a": settle("a"), "b": settle("b")}))
    assert name == "a"


def test_first_success_collects_every_error():
    with pytest.raises(AllSourcesFailed) as exc:
        asyncio.run(first_success({"one": fail(), "two": fail(0.01)}))
    assert set(exc.value.errors) == {"one", "two"}
    assert all(isinstance(e, NotFoundError) for e in exc.value.errors.values())


def test_first_success_retrieves_errors_of_sources_finishing_with_the_winner(caplog):
    caplog.set_level(logging.ERROR, logger="asyncio")
    name, _ = asyncio.run(first_success({"failing": fail(), "ok": settle("ok")}))
    gc.collect()

    assert name == "ok"
    assert "exception was never retrieved" not in caplog.text
