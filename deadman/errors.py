"""
Error taxonomy for the dead man's switch.

ConfigError is fatal at startup. AlreadyTriggered is returned synchronously
to whoever attempted the check-in. Notifier errors never propagate into the
tick loop; they are logged and carried on the DeliveryResult instead.
"""


class DeadManError(Exception):
    """Base class for every error raised by the switch."""

    pass


class ConfigError(DeadManError):
    """Configuration is missing, unreadable or invalid."""

    pass


class CheckInError(DeadManError):
    """A check-in could not be applied."""

    pass


class AlreadyTriggered(CheckInError):
    """The switch has fired; check-ins are no longer accepted."""

    def __init__(self, source: str | None = None):
        self.source = source
        msg = "Switch already triggered; check-in rejected"
        if source:
            msg += f" (source={source})"
        super().__init__(msg)


class NotifierError(DeadManError):
    """Base class for delivery failures."""

    retryable = False


class TransportError(NotifierError):
    """Network or SMTP-level failure. Transient, retried with backoff."""

    retryable = True


class AuthError(NotifierError):
    """The transport rejected our credentials."""

    pass


class AttachmentError(NotifierError):
    """An attachment is missing or unreadable."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Attachment {path}: {reason}")


class SendFailed(NotifierError):
    """Transient failures persisted past the retry budget."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Delivery failed after {attempts} attempt(s): {last_error}")
