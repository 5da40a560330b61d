import anyio
import pytest

from novel_search.concurrency import RequestCoalescer


@pytest.mark.anyio
async def test_concurrent_calls_share_one_execution() -> None:
    coalescer: RequestCoalescer[str, int] = RequestCoalescer()
    calls = 0
    results: list[int] = []

    async def _work() -> int:
        nonlocal calls
        calls += 1
        await anyio.sleep(0.02)
        return 42

    async def _caller() -> None:
        results.append(await coalescer.run("key", _work))

    async with anyio.create_task_group() as tg:
        for _ in range(5):
            tg.start_soon(_caller)

    assert calls == 1
    assert results == [42] * 5
    assert len(coalescer) == 0


@pytest.mark.anyio
async def test_distinct_keys_run_independently() -> None:
    coalescer: RequestCoalescer[str, str] = RequestCoalescer()
    seen: list[str] = []

    async def _work(key: str) -> str:
        seen.append(key)
        await anyio.sleep(0.01)
        return key

    async with anyio.create_task_group() as tg:
        tg.start_soon(coalescer.run, "a", lambda: _work("a"))
        tg.start_soon(coalescer.run, "b", lambda: _work("b"))

    assert sorted(seen) == ["a", "b"]


@pytest.mark.anyio
async def test_joiners_receive_the_same_error() -> None:
    coalescer: RequestCoalescer[str, None] = RequestCoalescer()
    errors: list[Exception] = []

    async def _fail() -> None:
        await anyio.sleep(0.02)
        raise RuntimeError("boom")

    async def _caller() -> None:
        try:
            await coalescer.run("key", _fail)
        except RuntimeError as exc:
            errors.append(exc)

    async with anyio.create_task_group() as tg:
        for _ in range(3):
            tg.start_soon(_caller)

    assert len(errors) == 3
    assert all(error is errors[0] for error in errors)


@pytest.mark.anyio
async def test_key_released_after_completion() -> None:
    """A call made after the previous one settled runs fresh."""
    coalescer: RequestCoalescer[str, int] = RequestCoalescer()
    calls = 0

    async def _work() -> int:
        nonlocal calls
        calls += 1
        return calls

    assert await coalescer.run("key", _work) == 1
    assert await coalescer.run("key", _work) == 2
    assert not coalescer.in_flight("key")


@pytest.mark.anyio
async def test_in_flight_reported_while_running() -> None:
    coalescer: RequestCoalescer[str, None] = RequestCoalescer()
    started = anyio.Event()
    release = anyio.Event()

    async def _work() -> None:
        started.set()
        await release.wait()

    async with anyio.create_task_group() as tg:
        tg.start_soon(coalescer.run, "key", _work)
        await started.wait()
        assert coalescer.in_flight("key")
        release.set()

    assert not coalescer.in_flight("key")


@pytest.mark.anyio
async def test_cancelled_leader_lets_joiner_retry() -> None:
    """A joiner whose leader was cancelled runs the operation itself."""
    coalescer: RequestCoalescer[str, str] = RequestCoalescer()
    started = anyio.Event()
    results: list[str] = []
    attempts = 0

    async def _work() -> str:
        nonlocal attempts
        attempts += 1
        started.set()
        await anyio.sleep(0.05)
        return "done"

    async def _leader(scope: anyio.CancelScope) -> None:
        with scope:
            await coalescer.run("key", _work)

    async def _joiner() -> None:
        results.append(await coalescer.run("key", _work))

    leader_scope = anyio.CancelScope()
    async with anyio.create_task_group() as tg:
        tg.start_soon(_leader, leader_scope)
        await started.wait()
        tg.start_soon(_joiner)
        await anyio.sleep(0.01)
        leader_scope.cancel()

    assert results == ["done"]
    assert attempts == 2
