"""
Test configuration: repo root on sys.path + determinism guards.

Guards:
- DEADMAN_HOME points at a per-test temp dir so nothing touches ~/.config
- smtplib.SMTP / SMTP_SSL raise unless a test patches them itself, so no
  test can reach a real mail server
"""

import smtplib
import sys
import threading
from email.message import EmailMessage
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from deadman.config import SwitchConfig  # noqa: E402
from deadman.errors import TransportError  # noqa: E402


# =============================================================================
# DETERMINISM GUARDS
# =============================================================================


def _forbidden_smtp(*args, **kwargs):
    raise RuntimeError(
        "DETERMINISM VIOLATION: test tried to open a real SMTP connection.\n"
        "Use the fake_transport fixture or monkeypatch smtplib.SMTP."
    )


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("DEADMAN_HOME", str(tmp_path / "deadman_home"))
    monkeypatch.delenv("DEADMAN_CONFIG", raising=False)
    monkeypatch.delenv("WEB_PASSWORD", raising=False)
    monkeypatch.setattr(smtplib, "SMTP", _forbidden_smtp)
    monkeypatch.setattr(smtplib, "SMTP_SSL", _forbidden_smtp)


# =============================================================================
# FAKES
# =============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> float:
        with self._lock:
            self.now += seconds
            return self.now

    def set(self, value: float) -> None:
        with self._lock:
            self.now = value


class FakeTransport:
    """
    Records messages. Raises queued errors first, one per send() call.

    Args:
        failures: Exceptions to raise on the first len(failures) attempts
        always_fail: Exception raised on every attempt (overrides failures)
    """

    def __init__(self, failures=None, always_fail: Exception | None = None):
        self.failures = list(failures or [])
        self.always_fail = always_fail
        self.attempts = 0
        self.sent: list[EmailMessage] = []
        self._lock = threading.Lock()

    def send(self, message: EmailMessage) -> None:
        with self._lock:
            self.attempts += 1
            if self.always_fail is not None:
                raise self.always_fail
            if self.failures:
                raise self.failures.pop(0)
            self.sent.append(message)

    @property
    def subjects(self) -> list[str]:
        with self._lock:
            return [m["Subject"] for m in self.sent]


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def config() -> SwitchConfig:
    """Short timers, instant retries."""
    return SwitchConfig(
        username="me@example.com",
        password="hunter2",
        smtp_server="smtp.example.com",
        to="someone@example.com",
        from_addr="me@example.com",
        subject_warning="Check in!",
        message_warning="Are you okay?",
        subject="Final",
        message="Goodbye",
        timer_warning=2,
        timer_dead_man=3,
        max_retries=3,
        retry_base_delay=0,
        retry_max_delay=0,
        web_password="s3cret",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def flaky_transport():
    """Factory: transport failing transiently n times, then succeeding."""

    def make(n: int) -> FakeTransport:
        return FakeTransport(failures=[TransportError(f"temporary failure {i}") for i in range(n)])

    return make


@pytest.fixture
def transport_factory():
    """The FakeTransport class, for tests that need custom failure modes."""
    return FakeTransport
