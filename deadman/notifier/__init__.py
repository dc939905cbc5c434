"""
Escalation delivery.

Renders EmailJobs into MIME messages and hands them to a transport with
bounded retry. Exactly-once per (kind, generation) within a process.
"""

from .engine import DeliveryResult, Notifier, Transport
from .messages import render_message

__all__ = ["Notifier", "DeliveryResult", "Transport", "render_message"]
