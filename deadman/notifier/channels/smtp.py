"""SMTP delivery channel."""

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage

from deadman.config import SwitchConfig
from deadman.errors import AuthError, TransportError

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465
DEFAULT_SEND_TIMEOUT = 30.0


@dataclass(frozen=True)
class ConnectionCheck:
    """Result of an SMTP handshake check."""

    ok: bool
    error: str | None = None

    @property
    def label(self) -> str:
        return "OK" if self.ok else f"FAILED ({self.error})"


class SmtpTransport:
    """Delivers escalation emails over SMTP.

    Port 465 uses implicit TLS; any other port upgrades with STARTTLS.
    With dry_run=True messages are logged and accepted without networking.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        check_timeout: float = 5.0,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        dry_run: bool = False,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.check_timeout = check_timeout
        self.send_timeout = send_timeout
        self.dry_run = dry_run

    @classmethod
    def from_config(cls, config: SwitchConfig, dry_run: bool = False) -> "SmtpTransport":
        return cls(
            host=config.smtp_server,
            port=config.smtp_port,
            username=config.username,
            password=config.password,
            check_timeout=config.smtp_check_timeout,
            dry_run=dry_run,
        )

    def _connect(self, timeout: float) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.port == IMPLICIT_TLS_PORT:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=timeout, context=context)

        server = smtplib.SMTP(self.host, self.port, timeout=timeout)
        try:
            server.ehlo()
            server.starttls(context=context)
            server.ehlo()
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def send(self, message: EmailMessage) -> None:
        """
        Hand one message to the SMTP server.

        Raises:
            AuthError: credentials rejected
            TransportError: connection, TLS or protocol failure
        """
        if self.dry_run:
            logger.info(f"DRY RUN: email to {message['To']}: {message['Subject']}")
            return

        try:
            with self._connect(self.send_timeout) as server:
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(message)
        except smtplib.SMTPAuthenticationError as e:
            raise AuthError(f"SMTP login rejected for {self.username}: {e.smtp_code}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"SMTP {self.host}:{self.port}: {e}") from e

        logger.info(f"Email accepted by {self.host} for {message['To']}")

    def check_connection(self) -> ConnectionCheck:
        """Connect, authenticate and NOOP within check_timeout."""
        if self.dry_run:
            return ConnectionCheck(ok=True)

        try:
            with self._connect(self.check_timeout) as server:
                if self.username:
                    server.login(self.username, self.password)
                code, _ = server.noop()
        except smtplib.SMTPAuthenticationError as e:
            logger.warning(f"SMTP check: authentication failed ({e.smtp_code})")
            return ConnectionCheck(ok=False, error="authentication failed")
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"SMTP check failed: {e}")
            return ConnectionCheck(ok=False, error=str(e) or type(e).__name__)

        if code != 250:
            return ConnectionCheck(ok=False, error=f"unexpected NOOP reply {code}")
        return ConnectionCheck(ok=True)
