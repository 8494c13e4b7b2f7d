"""Tests for the de-duplicating work queue."""

from __future__ import annotations

import threading
import time

from grafana_operator.workqueue import WorkQueue


class TestWorkQueue:
    def test_fifo_and_dedup(self) -> None:
        queue: WorkQueue[str] = WorkQueue("test")
        queue.add("a")
        queue.add("b")
        queue.add("a")

        assert len(queue) == 2
        assert queue.get(timeout=0) == "a"
        assert queue.get(timeout=0) == "b"
        assert queue.get(timeout=0) is None

    def test_item_in_flight_is_not_handed_out_twice(self) -> None:
        queue: WorkQueue[str] = WorkQueue()
        queue.add("a")
        item = queue.get(timeout=0)

        queue.add("a")

        assert queue.get(timeout=0) is None
        queue.done(item)
        assert queue.get(timeout=0) == "a"

    def test_done_without_readd_does_not_requeue(self) -> None:
        queue: WorkQueue[str] = WorkQueue()
        queue.add("a")
        queue.done(queue.get(timeout=0))
        assert queue.is_idle()
        assert queue.get(timeout=0) is None

    def test_is_idle_tracks_processing(self) -> None:
        queue: WorkQueue[str] = WorkQueue()
        assert queue.is_idle()
        queue.add("a")
        assert not queue.is_idle()
        item = queue.get(timeout=0)
        assert not queue.is_idle()
        queue.done(item)
        assert queue.is_idle()

    def test_add_after(self) -> None:
        queue: WorkQueue[str] = WorkQueue()
        queue.add_after("a", 0.05)

        assert queue.get(timeout=0) is None
        assert queue.get(timeout=2.0) == "a"

    def test_add_after_earliest_wins(self) -> None:
        queue: WorkQueue[str] = WorkQueue()
        queue.add_after("a", 60)
        queue.add_after("a", 0.01)
        queue.add_after("a", 30)

        assert queue.get(timeout=2.0) == "a"
        queue.done("a")
        assert queue.get(timeout=0.05) is None

    def test_non_positive_delay_adds_now(self) -> None:
        queue: WorkQueue[str] = WorkQueue()
        queue.add_after("a", 0)
        assert queue.get(timeout=0) == "a"

    def test_shut_down_wakes_waiters(self) -> None:
        queue: WorkQueue[str] = WorkQueue()
        results: list[str | None] = []
        waiter = threading.Thread(target=lambda: results.append(queue.get()))
        waiter.start()
        time.sleep(0.05)

        queue.shut_down()
        waiter.join(timeout=2.0)

        assert results == [None]
        assert queue.shutting_down

    def test_adds_ignored_after_shut_down(self) -> None:
        queue: WorkQueue[str] = WorkQueue()
        queue.shut_down()
        queue.add("a")
        queue.add_after("b", 0.01)
        assert len(queue) == 0
