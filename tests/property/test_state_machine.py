"""
Property-based tests for switch invariants using Hypothesis.

Random interleavings of check-ins, clock advances and ticks must never:
- move the phase backwards except by a check-in to WARNING
- leave TRIGGERED once entered
- decrease the generation
- create two EmailJobs for the same (kind, generation)
- leave a live deadline in the past after a mutation
"""

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from deadman.config import SwitchConfig
from deadman.errors import AlreadyTriggered
from deadman.timer import EmailKind, TimerEngine, TimerPhase

CONFIG = SwitchConfig(timer_warning=2, timer_dead_man=3, web_password="x")

# The autouse environment guard is function-scoped; it does not interact with examples
FAST = settings(max_examples=200, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])

operations = st.lists(
    st.one_of(
        st.tuples(st.just("advance"), st.floats(min_value=0, max_value=6, allow_nan=False)),
        st.tuples(st.just("tick"), st.booleans()),
        st.tuples(st.just("check_in"), st.none()),
    ),
    max_size=60,
)


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _run(ops):
    clock = Clock()
    jobs = []
    engine = TimerEngine(CONFIG, clock=clock, dispatch=jobs.append)
    history = [engine.snapshot()]

    for op, arg in ops:
        if op == "advance":
            clock.now += arg
            continue

        if op == "tick":
            # arg: schedule against the live generation, or a stale one
            generation = engine.snapshot().generation
            if not arg:
                generation -= 1
            job = engine.tick(generation=generation)
            if job is not None:
                assert arg, "a stale tick must not create a job"
        else:
            try:
                engine.check_in("prop")
            except AlreadyTriggered:
                assert history[-1].phase is TimerPhase.TRIGGERED

        state = engine.snapshot()
        # A stale tick evaluates nothing, so only live ticks and check-ins leave a fresh deadline
        evaluated = op == "check_in" or arg
        if evaluated and state.phase is not TimerPhase.TRIGGERED:
            assert state.deadline > clock.now
        history.append(state)

    return engine, jobs, history


@given(operations)
@FAST
def test_generation_never_decreases(ops):
    """Generation is monotonic across any interleaving."""
    _, _, history = _run(ops)
    generations = [s.generation for s in history]
    assert generations == sorted(generations)


@given(operations)
@FAST
def test_triggered_is_terminal(ops):
    """Once TRIGGERED, the snapshot never changes again."""
    _, _, history = _run(ops)
    for i, state in enumerate(history):
        if state.phase is TimerPhase.TRIGGERED:
            assert all(s == state for s in history[i:])
            break


@given(operations)
@FAST
def test_phase_only_regresses_to_warning(ops):
    """Phase moves forward one step at a time, or back to WARNING."""
    _, _, history = _run(ops)
    for before, after in zip(history, history[1:]):
        step = after.phase.ordinal - before.phase.ordinal
        assert step <= 1
        if step < 0:
            assert after.phase is TimerPhase.WARNING


@given(operations)
@FAST
def test_at_most_one_job_per_key(ops):
    """No (kind, generation) pair is ever issued twice, and at most one final email exists."""
    _, jobs, _ = _run(ops)
    keys = [j.key for j in jobs]
    assert len(keys) == len(set(keys))
    assert sum(1 for j in jobs if j.kind is EmailKind.FINAL) <= 1


@given(operations)
@FAST
def test_final_job_only_when_triggered(ops):
    """A final email exists if and only if the switch ended TRIGGERED."""
    engine, jobs, _ = _run(ops)
    has_final = any(j.kind is EmailKind.FINAL for j in jobs)
    assert has_final == engine.is_triggered
