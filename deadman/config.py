"""
Configuration for the dead man's switch.

Loaded once at startup from config.yaml (see deadman.paths for location).
If the file does not exist it is created with defaults. There is no runtime
reload: the resulting SwitchConfig is immutable.
"""

import logging
import os
import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from deadman import paths
from deadman.errors import ConfigError

logger = logging.getLogger(__name__)

DAY = 60 * 60 * 24

# YAML keys that differ from attribute names
_KEY_ALIASES = {"from": "from_addr"}

_TEXT_FIELDS = (
    "username",
    "password",
    "smtp_server",
    "message",
    "message_warning",
    "subject",
    "subject_warning",
    "to",
    "from_addr",
    "web_password",
)
_OPTIONAL_TEXT_FIELDS = ("log_level", "log_file")
_NUMBER_FIELDS = (
    "timer_warning",
    "timer_dead_man",
    "smtp_check_timeout",
    "retry_base_delay",
    "retry_max_delay",
)


def _default_web_password() -> str:
    """WEB_PASSWORD if set, otherwise a random one-off secret."""
    return os.environ.get("WEB_PASSWORD") or str(uuid.uuid4())


@dataclass(frozen=True)
class SwitchConfig:
    """Immutable switch configuration."""

    # Transport credentials
    username: str = "me@example.com"
    password: str = ""
    smtp_server: str = "smtp.example.com"
    smtp_port: int = 587
    smtp_check_timeout: float = 5.0

    # Messages
    message: str = (
        "I'm probably dead, go to Central Park NY under bench #137 you'll find "
        "an age-encrypted drive. Password is our favorite music in Pascal case."
    )
    message_warning: str = "Hey, you haven't checked in for a while. Are you okay?"
    subject: str = "[URGENT] Something Happened to Me!"
    subject_warning: str = "[URGENT] You need to check in!"

    # Addresses. The warning goes back to from_addr, the final message to `to`.
    to: str = "someone@example.com"
    from_addr: str = "me@example.com"
    attachments: tuple[str, ...] = ()

    # Timers (seconds)
    timer_warning: float = 14 * DAY
    timer_dead_man: float = 7 * DAY

    # Delivery retry
    max_retries: int = 3
    retry_base_delay: float = 2.0
    retry_max_delay: float = 60.0

    # Web front-end
    web_password: str = field(default_factory=_default_web_password)

    # Logging; both may be overridden on the command line
    log_level: str | None = None
    log_file: str | None = None

    def __post_init__(self):
        validate(self)

    @property
    def recipients(self) -> list[str]:
        """`to` split on commas. One message, several addresses."""
        return [a.strip() for a in self.to.split(",") if a.strip()]

    def to_dict(self) -> dict[str, Any]:
        """Serializable form using the on-disk key names."""
        data = asdict(self)
        data["attachments"] = list(self.attachments)
        for yaml_key, attr in _KEY_ALIASES.items():
            data[yaml_key] = data.pop(attr)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SwitchConfig":
        """
        Build a config from a parsed YAML mapping.

        Accepts the legacy single `attachment` key as well as `attachments`.
        Unknown keys are ignored with a warning.

        Raises:
            ConfigError: on wrong types or invalid values
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be a mapping, got {type(data).__name__}")

        data = dict(data)
        for yaml_key, attr in _KEY_ALIASES.items():
            if yaml_key in data:
                data[attr] = data.pop(yaml_key)

        legacy = data.pop("attachment", None)
        attachments = data.get("attachments") or []
        if isinstance(attachments, str):
            attachments = [attachments]
        if legacy:
            attachments = [legacy, *attachments]
        data["attachments"] = tuple(str(a) for a in attachments)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        kwargs = {k: v for k, v in data.items() if k in known}

        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigError(f"Invalid config: {e}") from e

    def with_overrides(self, **changes) -> "SwitchConfig":
        return replace(self, **changes)


def validate(config: SwitchConfig) -> None:
    """
    Check a config for values the engine cannot run with.

    Raises:
        ConfigError: describing the first problem found
    """
    for name in _TEXT_FIELDS:
        value = getattr(config, name)
        if not isinstance(value, str):
            raise ConfigError(f"{name} must be a string, got {type(value).__name__} {value!r}")
    for name in _OPTIONAL_TEXT_FIELDS:
        value = getattr(config, name)
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"{name} must be a string, got {type(value).__name__} {value!r}")

    for name in _NUMBER_FIELDS:
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{name} must be a number, got {value!r}")
    for name in ("timer_warning", "timer_dead_man", "smtp_check_timeout"):
        value = getattr(config, name)
        if value <= 0:
            raise ConfigError(f"{name} must be positive, got {value}")

    if isinstance(config.smtp_port, bool) or not isinstance(config.smtp_port, int) or not 0 < config.smtp_port < 65536:
        raise ConfigError(f"smtp_port out of range: {config.smtp_port!r}")

    if isinstance(config.max_retries, bool) or not isinstance(config.max_retries, int) or config.max_retries < 0:
        raise ConfigError(f"max_retries must be a non-negative integer, got {config.max_retries!r}")

    if config.retry_base_delay < 0 or config.retry_max_delay < 0:
        raise ConfigError("retry delays must not be negative")

    if "@" not in config.from_addr:
        raise ConfigError(f"Invalid from address: {config.from_addr!r}")
    if not config.recipients:
        raise ConfigError("At least one recipient is required in `to`")
    for addr in config.recipients:
        if "@" not in addr:
            raise ConfigError(f"Invalid recipient address: {addr!r}")

    if not config.web_password:
        raise ConfigError("web_password must not be empty")


def save(config: SwitchConfig, path: Path | None = None) -> Path:
    """Write the config as YAML. Returns the path written."""
    path = path or paths.config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigError(f"Could not write config {path}: {e}") from e
    return path


def load(path: Path | None = None) -> SwitchConfig:
    """
    Load an existing config file.

    Raises:
        ConfigError: if the file is missing, unreadable or invalid
    """
    path = path or paths.config_path()
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Config not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config {path}: {e}") from e

    config = SwitchConfig.from_dict(data)
    logger.info(f"Loaded config from {path}")
    return config


def load_or_initialize(path: Path | None = None) -> SwitchConfig:
    """
    Load the config, creating it with defaults on first run.

    Raises:
        ConfigError: if an existing file cannot be parsed or validated
    """
    path = path or paths.config_path()
    if not path.exists():
        config = SwitchConfig()
        save(config, path)
        logger.warning(f"No config found, wrote defaults to {path}")
        return config
    return load(path)
