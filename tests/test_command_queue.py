from __future__ import annotations

from gattseq.core.command_queue import CommandQueue


def test_seed_replaces_pending_and_resets_completion() -> None:
    queue = CommandQueue()
    queue.seed(["0B", "08"])
    queue.completion_reported = True
    queue.seed(["AA"])
    assert queue.pending == ("AA",)
    assert not queue.completion_reported


def test_pop_is_fifo() -> None:
    queue = CommandQueue()
    queue.seed(["0B", "08", "00"])
    assert [queue.pop(), queue.pop(), queue.pop()] == ["0B", "08", "00"]
    assert not queue


def test_mark_issued_counts_only_real_writes() -> None:
    queue = CommandQueue()
    queue.mark_issued(wrote=False)
    assert queue.write_in_flight
    assert queue.cooldown_running
    assert not queue.awaiting_ack
    assert queue.writes_issued == 0

    queue.mark_issued(wrote=True)
    assert queue.awaiting_ack
    assert queue.writes_issued == 1


def test_abandon_reports_dropped_count() -> None:
    queue = CommandQueue()
    queue.seed(["0B", "08"])
    assert queue.abandon() == 2
    assert len(queue) == 0
