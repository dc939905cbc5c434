"""
Tests for CheckInArbiter.

Covers:
- Single check-in passthrough
- Concurrent requests coalesced into one engine check-in
- Sequential requests each applied
- Rejection after trigger without queueing
- Engine errors released to every waiter in the batch
"""

import threading
from unittest.mock import MagicMock

import pytest

from deadman.arbiter import CheckInArbiter, CheckInRequest
from deadman.errors import AlreadyTriggered
from deadman.timer import TimerEngine, TimerPhase


@pytest.fixture
def engine(config, clock):
    return TimerEngine(config, clock=clock)


def _run_concurrently(n, target):
    """Start n threads behind a barrier; collect (result, error) per thread."""
    barrier = threading.Barrier(n)
    outcomes = [None] * n

    def worker(i):
        barrier.wait()
        try:
            outcomes[i] = (target(i), None)
        except Exception as e:
            outcomes[i] = (None, e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    assert not any(t.is_alive() for t in threads), "arbiter deadlocked"
    return outcomes


class TestCheckInArbiter:
    """Arbiter behaviour against a real engine."""

    def test_single_check_in(self, engine):
        arbiter = CheckInArbiter(engine, window=0)
        result = arbiter.check_in("terminal")
        assert result.source == "terminal"
        assert result.generation == 1
        assert engine.snapshot().phase is TimerPhase.WARNING

    def test_submit_request_object(self, engine):
        arbiter = CheckInArbiter(engine, window=0)
        result = arbiter.submit(CheckInRequest(source="web:1.2.3.4"))
        assert result.source == "web:1.2.3.4"

    def test_sequential_check_ins_each_applied(self, engine):
        arbiter = CheckInArbiter(engine, window=0)
        generations = [arbiter.check_in(f"terminal-{i}").generation for i in range(3)]
        assert generations == [1, 2, 3]

    def test_concurrent_check_ins_coalesce_into_one_reset(self, engine):
        """N simultaneous requests inside the window: exactly one engine reset."""
        arbiter = CheckInArbiter(engine, window=0.3)
        outcomes = _run_concurrently(10, lambda i: arbiter.check_in(f"web:{i}"))

        errors = [e for _, e in outcomes if e is not None]
        assert errors == []
        generations = {r.generation for r, _ in outcomes}
        assert generations == {1}
        assert engine.snapshot().generation == 1

    def test_coalesced_result_names_all_sources(self, engine):
        arbiter = CheckInArbiter(engine, window=0.3)
        outcomes = _run_concurrently(2, lambda i: arbiter.check_in(f"src-{i}"))
        sources = {r.source for r, _ in outcomes}
        assert sources == {"src-0,src-1"}

    def test_rejected_after_trigger(self, engine):
        engine.tick(now=2.0)
        engine.tick(now=5.0)
        arbiter = CheckInArbiter(engine, window=0)

        with pytest.raises(AlreadyTriggered) as exc_info:
            arbiter.check_in("terminal")
        assert exc_info.value.source == "terminal"
        assert arbiter._pending == []

    def test_concurrent_rejections_after_trigger(self, engine):
        engine.tick(now=2.0)
        engine.tick(now=5.0)
        arbiter = CheckInArbiter(engine, window=0.1)

        outcomes = _run_concurrently(5, lambda i: arbiter.check_in(f"web:{i}"))
        assert all(isinstance(e, AlreadyTriggered) for _, e in outcomes)


class TestArbiterErrorPropagation:
    """Errors from the engine reach every caller in the batch."""

    def test_already_triggered_raced_inside_batch(self):
        """Switch fires between the pre-check and the engine call."""
        engine = MagicMock()
        engine.is_triggered = False
        engine.check_in.side_effect = AlreadyTriggered("batch")
        arbiter = CheckInArbiter(engine, window=0.3)

        outcomes = _run_concurrently(3, lambda i: arbiter.check_in(f"web:{i}"))
        assert engine.check_in.call_count == 1
        for i, (_, error) in enumerate(outcomes):
            assert isinstance(error, AlreadyTriggered)
            assert error.source == f"web:{i}"

    def test_unexpected_engine_error_releases_waiters(self):
        engine = MagicMock()
        engine.is_triggered = False
        engine.check_in.side_effect = RuntimeError("engine bug")
        arbiter = CheckInArbiter(engine, window=0.3)

        outcomes = _run_concurrently(3, lambda i: arbiter.check_in(f"web:{i}"))
        assert all(isinstance(e, RuntimeError) for _, e in outcomes)

        # The arbiter is usable again afterwards
        engine.check_in.side_effect = None
        engine.check_in.return_value = "ok"
        assert arbiter.check_in("terminal") == "ok"
