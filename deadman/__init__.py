"""
Dead man's switch core.

    TimerEngine     - phase/deadline state machine
    CheckInArbiter  - single-writer, coalescing check-in path
    Notifier        - guaranteed-once escalation delivery
    SwitchDaemon    - owns the tick thread and wires the above together
"""

__version__ = "0.4.0"
