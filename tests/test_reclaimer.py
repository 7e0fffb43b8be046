"""Tests for the background cache reclaimer."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from warehouse.models import SweepResult
from warehouse.services.cache import ArtifactCache
from warehouse.services.errors import StorageError
from warehouse.services.reclaimer import CacheReclaimer


def mock_cache() -> AsyncMock:
    cache = AsyncMock(spec=ArtifactCache)
    cache.sweep.return_value = SweepResult(entries_removed=1)
    return cache


@pytest.mark.parametrize("interval", [0, -5])
def test_rejects_non_positive_interval(interval: float) -> None:
    with pytest.raises(ValueError):
        CacheReclaimer(mock_cache(), interval=interval)


@pytest.mark.asyncio
async def test_run_once_returns_sweep_result() -> None:
    cache = mock_cache()
    reclaimer = CacheReclaimer(cache, interval=60)

    result = await reclaimer.run_once()

    assert result == SweepResult(entries_removed=1)
    cache.sweep.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_once_logs_storage_failures() -> None:
    cache = mock_cache()
    cache.sweep.side_effect = StorageError("Cannot list storage root", operation="sweep")
    reclaimer = CacheReclaimer(cache, interval=60)

    assert await reclaimer.run_once() is None


@pytest.mark.asyncio
async def test_sweeps_repeatedly_until_stopped() -> None:
    cache = mock_cache()
    reclaimer = CacheReclaimer(cache, interval=0.01)

    reclaimer.start()
    assert reclaimer.is_running
    for _ in range(100):
        if cache.sweep.await_count >= 3:
            break
        await asyncio.sleep(0.01)
    await reclaimer.stop()

    assert cache.sweep.await_count >= 3
    assert not reclaimer.is_running


@pytest.mark.asyncio
async def test_first_sweep_waits_for_interval() -> None:
    cache = mock_cache()
    reclaimer = CacheReclaimer(cache, interval=60)

    reclaimer.start()
    await asyncio.sleep(0.05)
    await reclaimer.stop()

    cache.sweep.assert_not_awaited()


@pytest.mark.asyncio
async def test_survives_unexpected_errors() -> None:
    cache = mock_cache()
    cache.sweep.side_effect = [RuntimeError("boom"), SweepResult(), SweepResult()]
    reclaimer = CacheReclaimer(cache, interval=0.01)

    reclaimer.start()
    for _ in range(100):
        if cache.sweep.await_count >= 3:
            break
        await asyncio.sleep(0.01)
    await reclaimer.stop()

    assert cache.sweep.await_count >= 3


@pytest.mark.asyncio
async def test_start_twice_keeps_one_task() -> None:
    reclaimer = CacheReclaimer(mock_cache(), interval=60)

    reclaimer.start()
    first = reclaimer._task
    reclaimer.start()

    assert reclaimer._task is first
    await reclaimer.stop()


@pytest.mark.asyncio
async def test_stop_without_start_is_a_no_op() -> None:
    reclaimer = CacheReclaimer(mock_cache(), interval=60)
    await reclaimer.stop()
    assert not reclaimer.is_running
