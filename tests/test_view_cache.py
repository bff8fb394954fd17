import pytest

from conftest import DAY, at, make_segment, make_task
from services.view_cache import Change, EntryState, ViewCache


class StaticPort:
    def __init__(self, segments=(), tasks=()):
        self.segments = list(segments)
        self.tasks = list(tasks)
        self.fail = False

    async def fetch(self):
        if self.fail:
            raise RuntimeError("offline")
        return list(self.segments), list(self.tasks)


class StaticCache(ViewCache):
    name = "static"

    async def _fetch(self):
        return await self.port.fetch()


@pytest.mark.asyncio
async def test_discard_restores_previous_values():
    original = make_segment("s1", at(9), at(10))
    cache = StaticCache(StaticPort([original], [make_task()]))
    await cache.refresh()

    cache.apply_pending(Change(segments=(original.evolve(end_time=at(11)),), removed_task_ids=("t1",)), "m1")
    assert cache.segment("s1").end_time == at(11)
    assert cache.tasks() == []

    cache.discard("m1")
    assert cache.segment("s1") == original
    assert cache.task("t1") is not None
    assert cache.state_of("s1") is EntryState.CONFIRMED


@pytest.mark.asyncio
async def test_stacked_mutations_keep_first_confirmed_value():
    original = make_segment("s1", at(9), at(10))
    cache = StaticCache(StaticPort([original]))
    await cache.refresh()
    cache.apply_pending(Change(segments=(original.evolve(end_time=at(11)),)), "m1")
    cache.apply_pending(Change(segments=(original.evolve(end_time=at(12)),)), "m2")
    cache.discard("m2")
    assert cache.segment("s1") == original


@pytest.mark.asyncio
async def test_refresh_keeps_other_pending_mutations():
    port = StaticPort([make_segment("s1", at(9), at(10))])
    cache = StaticCache(port)
    await cache.refresh()
    optimistic = make_segment("new", at(13), at(14))
    cache.apply_pending(Change(segments=(optimistic,)), "m1")

    await cache.refresh()

    assert cache.segment("new") == optimistic
    assert cache.state_of("new") is EntryState.PENDING
    cache.confirm("m1")
    assert cache.state_of("new") is EntryState.CONFIRMED


@pytest.mark.asyncio
async def test_rollback_falls_back_to_discard_when_fetch_fails():
    original = make_segment("s1", at(9), at(10))
    port = StaticPort([original])
    cache = StaticCache(port)
    await cache.refresh()
    cache.apply_pending(Change(segments=(original.evolve(start_time=at(8)),)), "m1")

    port.fail = True
    await cache.rollback("m1")

    assert cache.segment("s1") == original
    assert cache.pending_mutations() == set()


@pytest.mark.asyncio
async def test_confirm_takes_settled_values_and_removals():
    cache = StaticCache(StaticPort([make_segment("s1", at(9), at(10))]))
    await cache.refresh()
    optimistic = make_segment("s2", at(10), at(11))
    cache.apply_pending(Change(segments=(optimistic,), removed_segment_ids=("s1",)), "m1")

    settled = Change(segments=(optimistic.evolve(order=3),), removed_segment_ids=("s1",))
    cache.confirm("m1", settled)

    assert cache.segment("s1") is None
    assert cache.segment("s2").order == 3
    assert [seg.id for seg in cache.segments()] == ["s2"]


def test_listeners_are_isolated():
    cache = StaticCache(StaticPort())
    calls = []

    def broken(_):
        raise ValueError("boom")

    cache.subscribe(broken)
    cache.subscribe(calls.append)
    cache.apply_pending(Change(tasks=(make_task(),)), "m1")
    assert calls == [cache]
    assert cache.version == 1


def test_change_affected_dates_and_ids():
    seg = make_segment("s1", at(9), at(10), task_id="t9")
    change = Change(segments=(seg,), removed_segment_ids=("s0",), dates=frozenset({DAY.replace(day=1)}))
    assert change.segment_ids == ("s1", "s0")
    assert change.task_ids == ("t9",)
    assert change.affected_dates == {DAY, DAY.replace(day=1)}
