import pytest

from wartungsteile.cache import MACHINES, QueryCache
from wartungsteile.errors import NetworkError, NotFoundError, ServerError


class Loader:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.anyio
async def test_fresh_entries_are_served_from_cache(sleeps):
    clock = Clock()
    queries = QueryCache(stale_seconds=60, sleep=sleeps, clock=clock)
    load = Loader(["m1"], ["m1", "m2"])

    assert await queries.fetch(MACHINES, load) == ["m1"]
    clock.now = 59
    assert await queries.fetch(MACHINES, load) == ["m1"]
    assert load.calls == 1

    clock.now = 61
    assert await queries.fetch(MACHINES, load) == ["m1", "m2"]
    assert load.calls == 2


@pytest.mark.anyio
async def test_server_errors_are_retried_twice_with_backoff(queries, sleeps):
    load = Loader(ServerError("x", 500), NetworkError("down"), ["ok"])
    assert await queries.fetch(MACHINES, load) == ["ok"]
    assert load.calls == 3
    assert sleeps.delays == [1.0, 2.0]


@pytest.mark.anyio
async def test_gives_up_after_two_retries(queries, sleeps):
    load = Loader(ServerError("x", 502))
    with pytest.raises(ServerError):
        await queries.fetch(MACHINES, load)
    assert load.calls == 3


@pytest.mark.anyio
async def test_client_errors_are_not_retried(queries, sleeps):
    load = Loader(NotFoundError("x", 404))
    with pytest.raises(NotFoundError):
        await queries.fetch(("machine", "42"), load)
    assert load.calls == 1
    assert sleeps.delays == []


@pytest.mark.anyio
async def test_invalidate_drops_every_key_with_prefix(queries):
    await queries.fetch(("machine", "1"), Loader("a"))
    await queries.fetch(("machine", "2"), Loader("b"))
    await queries.fetch(MACHINES, Loader(["a", "b"]))
    seen = []
    queries.on_invalidate(seen.append)

    queries.invalidate(("machine",))

    assert queries.get(("machine", "1")) is None
    assert queries.get(("machine", "2")) is None
    assert queries.get(MACHINES) == ["a", "b"]
    assert seen == [("machine",)]
    assert queries.invalidations == [("machine",)]


@pytest.mark.anyio
async def test_force_bypasses_fresh_entry(queries):
    load = Loader(1, 2)
    await queries.fetch(MACHINES, load)
    assert await queries.fetch(MACHINES, load, force=True) == 2
