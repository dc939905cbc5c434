"""
In-process metrics for the switch.

Every metric the switch records is declared at the bottom of this module;
engine, arbiter and notifier import the objects they update. The web
front-end renders the registry at /api/metrics in Prometheus text format.
"""

import threading


class _Metric:
    """Named value guarded by its own lock."""

    kind = "untyped"

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._lock = threading.Lock()

    def samples(self) -> list[tuple[str, float]]:
        raise NotImplementedError

    def render(self) -> list[str]:
        lines = []
        if self.description:
            lines.append(f"# HELP {self.name} {self.description}")
        lines.append(f"# TYPE {self.name} {self.kind}")
        lines.extend(f"{name} {value}" for name, value in self.samples())
        return lines


class Counter(_Metric):
    """Monotonic count of events."""

    kind = "counter"

    def __init__(self, name: str, description: str = ""):
        super().__init__(name, description)
        self._value = 0

    def inc(self, amount: int = 1) -> None:
        if amount < 0:
            raise ValueError(f"{self.name}: counters only go up")
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def samples(self):
        return [(self.name, self.value)]


class Gauge(_Metric):
    """Last value set."""

    kind = "gauge"

    def __init__(self, name: str, description: str = ""):
        super().__init__(name, description)
        self._value = 0.0

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def samples(self):
        return [(self.name, self.value)]


class Histogram(_Metric):
    """Running count, sum and maximum of observations (exported as a summary)."""

    kind = "summary"

    def __init__(self, name: str, description: str = ""):
        super().__init__(name, description)
        self._count = 0
        self._sum = 0.0
        self._max = 0.0

    def observe(self, value: float) -> None:
        with self._lock:
            self._count += 1
            self._sum += value
            self._max = max(self._max, value)

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    def samples(self):
        with self._lock:
            return [
                (f"{self.name}_count", self._count),
                (f"{self.name}_sum", self._sum),
                (f"{self.name}_max", self._max),
            ]


class MetricsRegistry:
    """Name -> metric. Asking twice for a name returns the same object."""

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _get(self, cls: type, name: str, description: str) -> _Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = self._metrics[name] = cls(name, description)
            elif not isinstance(metric, cls):
                raise TypeError(f"{name} is already registered as a {metric.kind}")
            return metric

    def counter(self, name: str, description: str = "") -> Counter:
        return self._get(Counter, name, description)

    def gauge(self, name: str, description: str = "") -> Gauge:
        return self._get(Gauge, name, description)

    def histogram(self, name: str, description: str = "") -> Histogram:
        return self._get(Histogram, name, description)

    def to_prometheus(self) -> str:
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)
        lines = [line for metric in metrics for line in metric.render()]
        return "\n".join(lines) + "\n"


REGISTRY = MetricsRegistry()

# Pre-defined metrics
# Engine
check_ins_applied = REGISTRY.counter("deadman_check_ins_total", "Check-ins applied to the engine")
check_ins_rejected = REGISTRY.counter("deadman_check_ins_rejected_total", "Check-ins rejected after trigger")
stale_ticks = REGISTRY.counter("deadman_stale_ticks_total", "Tick evaluations discarded as stale")
email_jobs_created = REGISTRY.counter("deadman_email_jobs_total", "Escalation jobs created")
phase = REGISTRY.gauge("deadman_phase", "Current phase (0=warning, 1=dead_man, 2=triggered)")
# Arbiter
check_in_requests = REGISTRY.counter("deadman_check_in_requests_total", "Check-in requests received")
check_in_requests_coalesced = REGISTRY.counter(
    "deadman_check_in_requests_coalesced_total", "Requests folded into another request's engine call"
)
# Notifier
notifications_sent = REGISTRY.counter("deadman_notifications_sent_total", "Escalation emails accepted")
notifications_failed = REGISTRY.counter("deadman_notifications_failed_total", "Escalation emails abandoned")
delivery_attempts = REGISTRY.counter("deadman_delivery_attempts_total", "Transport send attempts")
delivery_duration = REGISTRY.histogram("deadman_delivery_seconds", "Time to deliver or abandon a job")
