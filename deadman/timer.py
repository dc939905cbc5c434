"""
TimerEngine - phase/deadline state machine for the switch.

Phases:
    WARNING   -> first countdown; expiry emails the operator and starts DEAD_MAN
    DEAD_MAN  -> second countdown; expiry emails the recipients and fires
    TRIGGERED -> terminal, never transitions again

A check-in from WARNING or DEAD_MAN resets to WARNING with a fresh deadline.

All mutation happens under a single lock. Every check-in and every
WARNING -> DEAD_MAN transition bumps the generation counter; a tick that was
scheduled against an older generation is stale and is discarded. EmailJobs
are created and the transition committed inside the lock, then handed to the
dispatch hook after the lock is released.
"""

import enum
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from deadman.config import SwitchConfig
from deadman.errors import AlreadyTriggered
from deadman.observability import metrics

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class TimerPhase(str, enum.Enum):
    """Switch phases, in escalation order."""

    WARNING = "warning"
    DEAD_MAN = "dead_man"
    TRIGGERED = "triggered"

    @property
    def ordinal(self) -> int:
        return list(TimerPhase).index(self)


class EmailKind(str, enum.Enum):
    """Which escalation message a job carries."""

    WARNING = "warning"
    FINAL = "final"


@dataclass(frozen=True)
class SwitchState:
    """Immutable snapshot of the engine. Replaced wholesale on every mutation."""

    phase: TimerPhase
    deadline: float | None  # monotonic; None once TRIGGERED
    last_check_in: float | None
    generation: int
    duration: float  # length of the current countdown


@dataclass(frozen=True)
class CheckInResult:
    """Outcome of a successful check-in."""

    source: str
    generation: int
    deadline: float
    previous_phase: TimerPhase


@dataclass
class EmailJob:
    """
    One escalation message, created once per (kind, generation).

    The text is rendered from config at creation; attachment files are read
    only when the notifier builds the MIME message.
    """

    kind: EmailKind
    generation: int
    sender: str
    recipients: tuple[str, ...]
    subject: str
    body: str
    attachments: tuple[str, ...] = ()
    attempts: int = 0
    created_at: float = field(default_factory=time.time)

    @property
    def key(self) -> tuple[EmailKind, int]:
        return (self.kind, self.generation)

    @classmethod
    def from_config(cls, kind: EmailKind, generation: int, config: SwitchConfig) -> "EmailJob":
        if kind is EmailKind.WARNING:
            # The warning goes back to the operator, never to the recipients
            return cls(
                kind=kind,
                generation=generation,
                sender=config.from_addr,
                recipients=(config.from_addr,),
                subject=config.subject_warning,
                body=config.message_warning,
            )
        return cls(
            kind=kind,
            generation=generation,
            sender=config.from_addr,
            recipients=tuple(config.recipients),
            subject=config.subject,
            body=config.message,
            attachments=tuple(config.attachments),
        )


@dataclass(frozen=True)
class TimerStatus:
    """Read-only view for front-ends."""

    phase: TimerPhase
    seconds_remaining: float
    percent_remaining: int
    label: str
    generation: int

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "seconds_remaining": self.seconds_remaining,
            "percent_remaining": self.percent_remaining,
            "label": self.label,
        }


def format_duration(seconds: float) -> str:
    """
    Human-readable countdown, resolution adjusted to the duration.

    >>> format_duration(90061)
    '1 day(s), 1 hour(s), 1 minute(s), 1 second(s)'
    """
    total = max(0, int(seconds))
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)

    parts = []
    if days:
        parts.append(f"{days} day(s)")
    if hours:
        parts.append(f"{hours} hour(s)")
    if minutes:
        parts.append(f"{minutes} minute(s)")
    if secs or not parts:
        parts.append(f"{secs} second(s)")
    return ", ".join(parts)


class TimerEngine:
    """
    Owns the switch state. Thread-safe.

    Args:
        config: Loaded SwitchConfig (durations, message texts)
        clock: Monotonic clock, injectable for tests
        dispatch: Called with each new EmailJob after the transition commits
    """

    def __init__(
        self,
        config: SwitchConfig,
        clock: Clock = time.monotonic,
        dispatch: Callable[[EmailJob], None] | None = None,
    ):
        self.config = config
        self._clock = clock
        self._dispatch = dispatch
        self._lock = threading.Lock()
        self._listeners: list[Callable[[SwitchState], None]] = []
        self._issued: set[tuple[EmailKind, int]] = set()

        now = clock()
        self._state = SwitchState(
            phase=TimerPhase.WARNING,
            deadline=now + config.timer_warning,
            last_check_in=None,
            generation=0,
            duration=config.timer_warning,
        )
        metrics.phase.set(TimerPhase.WARNING.ordinal)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self) -> SwitchState:
        """Current state. The returned value is immutable."""
        with self._lock:
            return self._state

    @property
    def is_triggered(self) -> bool:
        return self.snapshot().phase is TimerPhase.TRIGGERED

    def status(self, now: float | None = None) -> TimerStatus:
        """Snapshot of {phase, seconds_remaining} plus display helpers."""
        state = self.snapshot()
        if state.phase is TimerPhase.TRIGGERED:
            return TimerStatus(state.phase, 0.0, 0, format_duration(0), state.generation)

        now = self._clock() if now is None else now
        remaining = max(0.0, state.deadline - now)
        percent = int(remaining / state.duration * 100) if state.duration else 0
        return TimerStatus(
            phase=state.phase,
            seconds_remaining=remaining,
            percent_remaining=min(100, percent),
            label=format_duration(remaining),
            generation=state.generation,
        )

    def add_listener(self, callback: Callable[[SwitchState], None]) -> None:
        """Register a callback run after every committed mutation."""
        with self._lock:
            self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def check_in(self, source: str = "unknown", now: float | None = None) -> CheckInResult:
        """
        Reset to WARNING with a fresh deadline.

        Raises:
            AlreadyTriggered: if the switch has fired. State is untouched.
        """
        with self._lock:
            previous = self._state
            if previous.phase is TimerPhase.TRIGGERED:
                metrics.check_ins_rejected.inc()
                raise AlreadyTriggered(source)

            now = self._clock() if now is None else now
            warning = self.config.timer_warning
            self._state = SwitchState(
                phase=TimerPhase.WARNING,
                deadline=now + warning,
                last_check_in=now,
                generation=previous.generation + 1,
                duration=warning,
            )
            current = self._state

        metrics.check_ins_applied.inc()
        metrics.phase.set(TimerPhase.WARNING.ordinal)
        logger.info(
            f"Check-in from {source}: {previous.phase.value} -> warning "
            f"(generation {current.generation}, {format_duration(warning)} left)"
        )
        self._notify(current)
        return CheckInResult(
            source=source,
            generation=current.generation,
            deadline=current.deadline,
            previous_phase=previous.phase,
        )

    def tick(self, now: float | None = None, generation: int | None = None) -> EmailJob | None:
        """
        Evaluate expiry of the current deadline.

        Args:
            now: Evaluation time on the engine clock (defaults to clock())
            generation: Generation the caller scheduled against. If it no
                longer matches the live generation the tick is discarded.

        Returns:
            The EmailJob created by this tick, or None.
        """
        with self._lock:
            state = self._state
            if generation is not None and generation != state.generation:
                metrics.stale_ticks.inc()
                logger.debug(
                    f"Discarding stale tick for generation {generation} "
                    f"(live generation {state.generation})"
                )
                return None

            if state.phase is TimerPhase.TRIGGERED:
                return None

            now = self._clock() if now is None else now
            if now < state.deadline:
                return None

            if state.phase is TimerPhase.WARNING:
                job = self._issue(EmailKind.WARNING, state.generation)
                dead_man = self.config.timer_dead_man
                self._state = SwitchState(
                    phase=TimerPhase.DEAD_MAN,
                    deadline=now + dead_man,
                    last_check_in=state.last_check_in,
                    generation=state.generation + 1,
                    duration=dead_man,
                )
            else:
                job = self._issue(EmailKind.FINAL, state.generation)
                self._state = SwitchState(
                    phase=TimerPhase.TRIGGERED,
                    deadline=None,
                    last_check_in=state.last_check_in,
                    generation=state.generation,
                    duration=0.0,
                )
            current = self._state

        metrics.phase.set(current.phase.ordinal)
        if current.phase is TimerPhase.TRIGGERED:
            logger.critical("Dead man timer expired: switch TRIGGERED")
        else:
            logger.warning(
                f"Warning timer expired: entering dead_man phase "
                f"({format_duration(current.duration)} left)"
            )

        self._notify(current)
        if job is not None and self._dispatch is not None:
            self._dispatch(job)
        return job

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _issue(self, kind: EmailKind, generation: int) -> EmailJob | None:
        """Create the job for (kind, generation) unless one already exists. Lock held."""
        key = (kind, generation)
        if key in self._issued:
            logger.error(f"Refusing to create a second {kind.value} job for generation {generation}")
            return None
        self._issued.add(key)
        metrics.email_jobs_created.inc()
        return EmailJob.from_config(kind, generation, self.config)

    def _notify(self, state: SwitchState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}")
