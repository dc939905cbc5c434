"""
CheckInArbiter - single-writer path from front-ends to the engine.

Terminal and web handlers never touch the engine directly; they submit a
CheckInRequest here and block until the batch it joined has been applied.

Batching:
    The first request to arrive while nothing is in flight becomes the
    leader. It waits `window` seconds for others to join, then makes ONE
    engine.check_in() call for the whole batch. Every request in the batch
    gets that call's result (or the same AlreadyTriggered). Requests that
    arrive while a batch is being applied form the next batch.
"""

import logging
import threading
import time
from dataclasses import dataclass, field

from deadman.errors import AlreadyTriggered
from deadman.observability import metrics
from deadman.timer import CheckInResult, TimerEngine

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 0.05


@dataclass(frozen=True)
class CheckInRequest:
    """A front-end's proof of life. Not retained after it is answered."""

    source: str
    timestamp: float = field(default_factory=time.time)


class _Ticket:
    """Waiting slot for one request."""

    __slots__ = ("request", "done", "result", "error")

    def __init__(self, request: CheckInRequest):
        self.request = request
        self.done = False
        self.result: CheckInResult | None = None
        self.error: Exception | None = None


class CheckInArbiter:
    """
    Serializes and coalesces concurrent check-ins.

    Args:
        engine: The one TimerEngine for this process
        window: Seconds a leader waits for other requests to join its batch
    """

    def __init__(self, engine: TimerEngine, window: float = DEFAULT_WINDOW_SECONDS):
        self.engine = engine
        self.window = window
        self._cond = threading.Condition()
        self._pending: list[_Ticket] = []
        self._in_flight = False

    def check_in(self, source: str) -> CheckInResult:
        """Convenience entry point for front-ends."""
        return self.submit(CheckInRequest(source=source))

    def submit(self, request: CheckInRequest) -> CheckInResult:
        """
        Apply a check-in, coalescing with concurrent ones.

        Returns:
            CheckInResult of the engine call that covered this request

        Raises:
            AlreadyTriggered: if the switch has fired (not queued)
        """
        metrics.check_in_requests.inc()
        if self.engine.is_triggered:
            raise AlreadyTriggered(request.source)

        ticket = _Ticket(request)
        with self._cond:
            self._pending.append(ticket)
            while not ticket.done and self._in_flight:
                self._cond.wait()
            if ticket.done:
                return self._answer(ticket)

            # Leader: hold the batch open for the window, then take it
            self._in_flight = True
            deadline = time.monotonic() + self.window
            remaining = self.window
            while remaining > 0:
                self._cond.wait(timeout=remaining)
                remaining = deadline - time.monotonic()
            batch, self._pending = self._pending, []

        try:
            self._apply(batch)
        finally:
            with self._cond:
                self._in_flight = False
                self._cond.notify_all()

        return self._answer(ticket)

    def _apply(self, batch: list[_Ticket]) -> None:
        """One engine call for the whole batch. Runs outside the condition lock."""
        sources = sorted({t.request.source for t in batch})
        label = ",".join(sources)
        if len(batch) > 1:
            metrics.check_in_requests_coalesced.inc(len(batch) - 1)
            logger.debug(f"Coalescing {len(batch)} check-in requests from {label}")

        result = error = None
        try:
            result = self.engine.check_in(source=label)
        except AlreadyTriggered as e:
            error = e
            logger.warning(f"Check-in from {label} rejected: switch already triggered")
        except Exception as e:
            # Every waiter in the batch must be released, not only the leader
            error = e
            logger.error(f"Check-in from {label} failed: {e}")

        with self._cond:
            for t in batch:
                t.result = result
                t.error = error
                t.done = True

    @staticmethod
    def _answer(ticket: _Ticket) -> CheckInResult:
        if isinstance(ticket.error, AlreadyTriggered):
            raise AlreadyTriggered(ticket.request.source) from ticket.error
        if ticket.error is not None:
            raise ticket.error
        return ticket.result
