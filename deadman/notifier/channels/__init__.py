"""
Delivery channels.

Every channel implements the Transport protocol: send(message) -> None,
raising TransportError for transient failures and AuthError for rejected
credentials.
"""

from .smtp import ConnectionCheck, SmtpTransport

__all__ = ["SmtpTransport", "ConnectionCheck"]
