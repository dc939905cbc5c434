"""
Switch Daemon: owns one engine and its tick thread.

A daemon:
- Constructs the single TimerEngine, CheckInArbiter and Notifier for the process
- Runs a tick thread that sleeps until the current deadline
  (woken early by check-ins) instead of polling on a fixed interval
- Dispatches each EmailJob on its own thread so delivery retries never
  delay expiry evaluation
- Shuts down cooperatively on SIGTERM/SIGINT or stop()

Nothing is persisted: a restarted daemon starts a fresh WARNING countdown.

Usage:
    daemon = SwitchDaemon(config)
    daemon.start()
    daemon.arbiter.check_in("terminal")
    daemon.stop()
"""

import logging
import signal
import threading
import time

from deadman.arbiter import DEFAULT_WINDOW_SECONDS, CheckInArbiter
from deadman.config import SwitchConfig
from deadman.notifier import DeliveryResult, Notifier, Transport
from deadman.notifier.channels import SmtpTransport
from deadman.resilience import RetryConfig
from deadman.timer import Clock, EmailJob, SwitchState, TimerEngine, TimerPhase, TimerStatus

logger = logging.getLogger(__name__)

# Upper bound on one sleep so a very long countdown is still re-read periodically
MAX_SLEEP_SECONDS = 60.0
JOIN_TIMEOUT_SECONDS = 5.0


class SwitchDaemon:
    """
    Process host for the switch.

    Args:
        config: Loaded SwitchConfig
        transport: Delivery transport; defaults to SMTP from config
        clock: Monotonic clock shared by engine and tick loop
        shutdown_event: Cooperative cancellation token from the host process
        max_sleep: Cap on a single tick-thread sleep
        window: Check-in coalescing window for the arbiter
    """

    def __init__(
        self,
        config: SwitchConfig,
        transport: Transport | None = None,
        clock: Clock = time.monotonic,
        shutdown_event: threading.Event | None = None,
        max_sleep: float = MAX_SLEEP_SECONDS,
        window: float = DEFAULT_WINDOW_SECONDS,
    ):
        self.config = config
        self.max_sleep = max_sleep
        self._clock = clock
        self._shutdown_event = shutdown_event or threading.Event()
        self._wakeup = threading.Event()
        self._tick_thread: threading.Thread | None = None
        self._dispatch_threads: list[threading.Thread] = []
        self._dispatch_lock = threading.Lock()

        self.notifier = Notifier(
            transport or SmtpTransport.from_config(config),
            retry=RetryConfig.from_config(config),
            cancel_event=self._shutdown_event,
        )
        self.engine = TimerEngine(config, clock=clock, dispatch=self._dispatch)
        self.engine.add_listener(self._on_state_change)
        self.arbiter = CheckInArbiter(self.engine, window=window)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._tick_thread is not None and self._tick_thread.is_alive()

    @property
    def shutdown_event(self) -> threading.Event:
        return self._shutdown_event

    def start(self) -> None:
        """Start the tick thread. Idempotent."""
        if self.running:
            return
        self._tick_thread = threading.Thread(
            target=self._tick_loop, name="deadman-tick", daemon=True
        )
        self._tick_thread.start()
        status = self.engine.status()
        logger.info(
            f"Dead man's switch armed: {status.phase.value}, {status.label} until warning"
        )

    def stop(self, timeout: float = JOIN_TIMEOUT_SECONDS) -> None:
        """Signal shutdown and wait for the tick and dispatch threads."""
        self._shutdown_event.set()
        self._wakeup.set()
        if self._tick_thread is not None:
            self._tick_thread.join(timeout=timeout)
        self.wait_for_dispatches(timeout=timeout)
        logger.info("Dead man's switch stopped")

    def run(self) -> None:
        """Foreground loop: start, block until a signal or stop(), clean up."""
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)

        self.start()
        try:
            while not self._shutdown_event.wait(timeout=1.0):
                pass
        finally:
            self.stop()

    def _handle_signal(self, signum, frame):
        """Handle shutdown signals."""
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name}, shutting down...")
        self._shutdown_event.set()
        self._wakeup.set()

    # ------------------------------------------------------------------
    # Tick thread
    # ------------------------------------------------------------------

    def _tick_loop(self) -> None:
        while not self._shutdown_event.is_set():
            # Clear before reading so a check-in after the read still wakes us
            self._wakeup.clear()
            state = self.engine.snapshot()
            if state.phase is TimerPhase.TRIGGERED:
                logger.info("Switch triggered; tick loop finished")
                return

            delay = max(0.0, state.deadline - self._clock())
            if self._wakeup.wait(timeout=min(delay, self.max_sleep)):
                continue

            self.engine.tick(self._clock(), generation=state.generation)

    def _on_state_change(self, state: SwitchState) -> None:
        self._wakeup.set()

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _dispatch(self, job: EmailJob) -> None:
        thread = threading.Thread(
            target=self.notifier.send,
            args=(job,),
            name=f"deadman-notify-{job.kind.value}-{job.generation}",
            daemon=True,
        )
        with self._dispatch_lock:
            self._dispatch_threads.append(thread)
        thread.start()

    def wait_for_dispatches(self, timeout: float | None = None) -> list[DeliveryResult]:
        """Join outstanding delivery threads. Returns all results so far."""
        with self._dispatch_lock:
            threads = list(self._dispatch_threads)
        for thread in threads:
            thread.join(timeout=timeout)
        with self._dispatch_lock:
            self._dispatch_threads = [t for t in self._dispatch_threads if t.is_alive()]
        return list(self.notifier.results)

    # ------------------------------------------------------------------
    # Front-end helpers
    # ------------------------------------------------------------------

    def status(self) -> TimerStatus:
        return self.engine.status()

    def check_in(self, source: str):
        """Shortcut to the arbiter; front-ends never call the engine directly."""
        return self.arbiter.check_in(source)
