from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "deadman"
APP_ENV_HOME = "DEADMAN_HOME"
APP_ENV_CONFIG = "DEADMAN_CONFIG"


def app_home() -> Path:
    """
    User-writable home for the switch.
    Override with DEADMAN_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return (base / APP_NAME).resolve()


def config_path() -> Path:
    """
    Canonical config file path.

    Resolution order:
    1. DEADMAN_CONFIG env var (explicit override)
    2. $DEADMAN_HOME/config.yaml
    3. ~/.config/deadman/config.yaml (default)
    """
    if os.environ.get(APP_ENV_CONFIG):
        return Path(os.environ[APP_ENV_CONFIG]).expanduser().resolve()
    return app_home() / "config.yaml"

