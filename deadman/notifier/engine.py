"""
Notifier - delivers escalation jobs through a transport.

The engine has already committed the phase transition by the time a job
reaches us; nothing here can undo or block it. Delivery outcome is logged
and returned as a DeliveryResult.

Guarantees:
    - each (kind, generation) is attempted at most once per process; a
      repeated send() of the same job returns status "duplicate"
    - TransportError is retried with backoff up to max_retries
    - AuthError / AttachmentError abort the job on the spot
"""

import logging
import threading
import time
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from deadman.errors import AttachmentError, AuthError, NotifierError, SendFailed, TransportError
from deadman.observability import metrics
from deadman.resilience import RetryCancelled, RetryConfig, retry_with_backoff
from deadman.timer import EmailJob

from .messages import render_message

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can hand an EmailMessage to the outside world."""

    def send(self, message: EmailMessage) -> None: ...


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one Notifier.send() call."""

    kind: str
    generation: int
    status: str  # sent | failed | duplicate
    attempts: int
    error: NotifierError | None = None

    @property
    def success(self) -> bool:
        return self.status == "sent"


class Notifier:
    """
    Sends EmailJobs with bounded retry.

    Args:
        transport: Transport implementation (SmtpTransport in production)
        retry: Backoff policy for TransportError
        cancel_event: Shutdown signal; interrupts backoff waits
    """

    def __init__(
        self,
        transport: Transport,
        retry: RetryConfig | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.transport = transport
        self.retry = retry or RetryConfig()
        self.cancel_event = cancel_event or threading.Event()
        self._lock = threading.Lock()
        self._dispatched: set[tuple] = set()
        self.results: list[DeliveryResult] = []

    def send(self, job: EmailJob) -> DeliveryResult:
        """Deliver a job. Never raises for delivery failures."""
        with self._lock:
            if job.key in self._dispatched:
                logger.warning(
                    f"{job.kind.value} email for generation {job.generation} already dispatched; skipping"
                )
                return DeliveryResult(job.kind.value, job.generation, "duplicate", job.attempts)
            self._dispatched.add(job.key)

        start = time.monotonic()
        try:
            result = self._deliver(job)
        finally:
            metrics.delivery_duration.observe(time.monotonic() - start)

        with self._lock:
            self.results.append(result)
        return result

    def _deliver(self, job: EmailJob) -> DeliveryResult:
        label = f"{job.kind.value} email (generation {job.generation})"

        try:
            message = render_message(job)
        except AttachmentError as e:
            return self._failed(job, e, f"{label} aborted: {e}")

        def attempt() -> None:
            job.attempts += 1
            metrics.delivery_attempts.inc()
            self.transport.send(message)

        try:
            retry_with_backoff(
                attempt,
                self.retry,
                retry_on=(TransportError,),
                cancel_event=self.cancel_event,
                logger_=logger,
            )
        except AuthError as e:
            return self._failed(job, e, f"{label} aborted, credentials rejected: {e}")
        except TransportError as e:
            err = SendFailed(job.attempts, e)
            return self._failed(job, err, f"{label} failed: {err}")
        except RetryCancelled as e:
            err = SendFailed(job.attempts, e.last_error)
            return self._failed(job, err, f"{label} cancelled by shutdown after {job.attempts} attempt(s)")

        metrics.notifications_sent.inc()
        logger.info(f"{label} sent to {', '.join(job.recipients)} after {job.attempts} attempt(s)")
        return DeliveryResult(job.kind.value, job.generation, "sent", job.attempts)

    @staticmethod
    def _failed(job: EmailJob, error: NotifierError, message: str) -> DeliveryResult:
        metrics.notifications_failed.inc()
        logger.error(message)
        return DeliveryResult(job.kind.value, job.generation, "failed", job.attempts, error)
