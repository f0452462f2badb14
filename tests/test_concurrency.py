"""Tests for chunking and the processing gate."""

import asyncio

import pytest

from exceptions import BackpressureError
from utils.concurrency import ProcessingGate, chunked


def test_chunked_splits_in_order():
    assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]


def test_chunked_exact_and_oversized():
    assert list(chunked([1, 2, 3], 3)) == [[1, 2, 3]]
    assert list(chunked([1, 2], 10)) == [[1, 2]]
    assert list(chunked([], 3)) == []


@pytest.mark.parametrize("size", [0, -1])
def test_chunked_rejects_non_positive_size(size):
    with pytest.raises(ValueError):
        list(chunked([1], size))


@pytest.mark.asyncio
async def test_gate_counts_active_and_queued():
    gate = ProcessingGate(slots=1, max_queue=3)
    await gate.acquire()
    assert gate.active_jobs == 1
    assert gate.queued_jobs == 0

    waiter = asyncio.create_task(gate.acquire())
    await asyncio.sleep(0)
    assert gate.queued_jobs == 1

    gate.release()
    await waiter
    assert gate.active_jobs == 1
    assert gate.queued_jobs == 0
    gate.release()
    assert gate.active_jobs == 0


@pytest.mark.asyncio
async def test_gate_rejects_when_queue_full():
    gate = ProcessingGate(slots=1, max_queue=1)
    await gate.acquire()

    with pytest.raises(BackpressureError) as exc_info:
        await gate.acquire()
    assert exc_info.value.status_code == 503
    assert exc_info.value.details["retry_after"] == 5

    gate.release()
    await gate.acquire()
    gate.release()


@pytest.mark.asyncio
async def test_slot_releases_on_error():
    gate = ProcessingGate(slots=1, max_queue=1)
    with pytest.raises(RuntimeError):
        async with gate.slot():
            assert gate.active_jobs == 1
            raise RuntimeError("pipeline failed")
    assert gate.active_jobs == 0

    async with gate.slot():
        pass
