# =============================================================================
# Unit Tests — Job Queue
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from app.exceptions import QueueClosedError
from app.workers.queue import JobQueue


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class TestJobQueue:
    """FIFO delivery, exactly-one-waiter hand-off, and close semantics."""

    def test_fifo_order(self):
        async def scenario():
            queue = JobQueue()
            for document_id in (3, 1, 2):
                queue.enqueue(document_id)
            return [await queue.dequeue() for _ in range(3)]

        assert _run(scenario()) == [3, 1, 2]

    def test_duplicates_are_not_collapsed(self):
        async def scenario():
            queue = JobQueue()
            queue.enqueue(7)
            queue.enqueue(7)
            return queue.qsize()

        assert _run(scenario()) == 2

    def test_waiting_dequeue_receives_later_enqueue(self):
        async def scenario():
            queue = JobQueue()
            waiter = asyncio.create_task(queue.dequeue())
            await asyncio.sleep(0)
            queue.enqueue(42)
            return await asyncio.wait_for(waiter, timeout=1), queue.qsize()

        assert _run(scenario()) == (42, 0)

    def test_each_item_goes_to_exactly_one_waiter(self):
        async def scenario():
            queue = JobQueue()
            waiters = [asyncio.create_task(queue.dequeue()) for _ in range(3)]
            await asyncio.sleep(0)
            queue.enqueue(1)
            queue.enqueue(2)
            await asyncio.sleep(0)
            finished = [w for w in waiters if w.done()]
            pending = [w for w in waiters if not w.done()]
            queue.close()
            rest = await asyncio.gather(*pending)
            return sorted(w.result() for w in finished), rest

        delivered, rest = _run(scenario())
        assert delivered == [1, 2]
        assert rest == [None]

    def test_close_wakes_blocked_dequeue(self):
        async def scenario():
            queue = JobQueue()
            waiter = asyncio.create_task(queue.dequeue())
            await asyncio.sleep(0)
            queue.close()
            return await asyncio.wait_for(waiter, timeout=1)

        assert _run(scenario()) is None

    def test_close_drops_pending_items(self):
        async def scenario():
            queue = JobQueue()
            queue.enqueue(1)
            queue.close()
            return queue.qsize(), await queue.dequeue()

        assert _run(scenario()) == (0, None)

    def test_enqueue_after_close_raises(self):
        queue = JobQueue()
        queue.close()
        with pytest.raises(QueueClosedError):
            queue.enqueue(1)

    def test_async_iteration_stops_on_close(self):
        async def scenario():
            queue = JobQueue()
            seen = []

            async def consume():
                async for document_id in queue:
                    seen.append(document_id)

            consumer = asyncio.create_task(consume())
            queue.enqueue(1)
            queue.enqueue(2)
            await asyncio.sleep(0.01)
            queue.close()
            await asyncio.wait_for(consumer, timeout=1)
            return seen

        assert _run(scenario()) == [1, 2]

    def test_cancelled_waiter_does_not_swallow_item(self):
        async def scenario():
            queue = JobQueue()
            cancelled = asyncio.create_task(queue.dequeue())
            await asyncio.sleep(0)
            cancelled.cancel()
            await asyncio.sleep(0)
            queue.enqueue(5)
            return await queue.dequeue()

        assert _run(scenario()) == 5
