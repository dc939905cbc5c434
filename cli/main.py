#!/usr/bin/env python3
"""
Dead man's switch CLI - terminal front-end.

Usage:
    deadman run            # Arm the switch; keys: c=check in, s=status, q=quit
    deadman web            # Arm the switch and serve the web front-end
    deadman status         # Show config location and timers
    deadman check-smtp     # Verify SMTP connectivity and credentials
    deadman init-config    # Write a default config if none exists
"""

import argparse
import sys
import threading
from pathlib import Path

from deadman import config as config_module
from deadman import paths
from deadman.daemon import SwitchDaemon
from deadman.errors import AlreadyTriggered, ConfigError
from deadman.notifier.channels import SmtpTransport
from deadman.observability import configure_logging
from deadman.timer import TimerPhase, TimerStatus, format_duration

PHASE_TITLES = {
    TimerPhase.WARNING: "Warning",
    TimerPhase.DEAD_MAN: "Dead Man's Switch",
    TimerPhase.TRIGGERED: "Triggered",
}

KEY_HELP = "[c] check in   [s] status   [q] quit"


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def format_status(status: TimerStatus) -> str:
    """One status line: phase, bar, time left."""
    title = PHASE_TITLES[status.phase]
    if status.phase is TimerPhase.TRIGGERED:
        return f"{title}: the final message has been sent"
    filled = status.percent_remaining // 5
    bar = "█" * filled + "░" * (20 - filled)
    return f"{title} timer │{bar}│ {status.label} left"


def handle_key(daemon: SwitchDaemon, key: str) -> bool:
    """
    React to one key from the terminal.

    Returns:
        False when the user asked to quit, True otherwise
    """
    key = key.strip().lower()
    if key in ("q", "quit"):
        return False
    if key in ("c", "check-in"):
        try:
            daemon.check_in(source="terminal")
        except AlreadyTriggered:
            print("⚠ Switch already triggered; check-in ignored.")
            return True
        print("✓ Checked in.")
        print(format_status(daemon.status()))
    elif key in ("s", "status", ""):
        print(format_status(daemon.status()))
    else:
        print(f"Unknown key {key!r}. {KEY_HELP}")
    return True


def _key_loop(daemon: SwitchDaemon):
    """Read keys until quit or EOF, then leave the daemon to the signal handlers."""
    for line in sys.stdin:
        if not handle_key(daemon, line):
            daemon.shutdown_event.set()
            return


def _load_config(args) -> config_module.SwitchConfig:
    path = paths.config_path() if args.config is None else args.config
    try:
        return config_module.load_or_initialize(path)
    except ConfigError as e:
        print(f"✗ Configuration error: {e}", file=sys.stderr)
        sys.exit(2)


def _setup_logging(args, cfg: config_module.SwitchConfig | None = None):
    """Command line wins over config; config wins over defaults."""
    level = args.log_level or (cfg.log_level if cfg else None) or "INFO"
    log_file = args.log_file or (cfg.log_file if cfg else None)
    configure_logging(
        level=level,
        json_format=args.json_logs or None,
        log_file=Path(log_file) if log_file else None,
    )


def cmd_run(args):
    """Arm the switch with the terminal key loop."""
    cfg = _load_config(args)
    _setup_logging(args, cfg)

    daemon = SwitchDaemon(cfg, transport=SmtpTransport.from_config(cfg, dry_run=args.dry_run))
    print_header("DEAD MAN'S SWITCH")
    print(f"  Config: {paths.config_path() if args.config is None else args.config}")
    print(f"  {KEY_HELP}")
    print(format_status(daemon.status()))

    threading.Thread(target=_key_loop, args=(daemon,), name="deadman-keys", daemon=True).start()
    daemon.run()


def cmd_web(args):
    """Arm the switch and serve the web front-end."""
    from api.server import serve

    cfg = _load_config(args)
    _setup_logging(args, cfg)
    daemon = SwitchDaemon(cfg, transport=SmtpTransport.from_config(cfg, dry_run=args.dry_run))
    serve(daemon, host=args.host, port=args.port)


def cmd_status(args):
    """Show config location and timers."""
    cfg = _load_config(args)

    print_header("CONFIGURATION")
    print(f"  File:         {paths.config_path() if args.config is None else args.config}")
    print(f"  Warning:      {format_duration(cfg.timer_warning)} → {cfg.from_addr}")
    print(f"  Dead man:     {format_duration(cfg.timer_dead_man)} → {', '.join(cfg.recipients)}")
    print(f"  SMTP:         {cfg.smtp_server}:{cfg.smtp_port} as {cfg.username}")
    if cfg.attachments:
        print(f"  Attachments:  {', '.join(cfg.attachments)}")


def cmd_check_smtp(args):
    """Verify SMTP connectivity and credentials."""
    cfg = _load_config(args)
    check = SmtpTransport.from_config(cfg).check_connection()
    print(f"SMTP {cfg.smtp_server}:{cfg.smtp_port}: {check.label}")
    if not check.ok:
        sys.exit(1)


def cmd_init_config(args):
    """Write a default config if none exists."""
    path = paths.config_path() if args.config is None else args.config
    if path.exists():
        print(f"Config already exists: {path}")
        return
    config_module.save(config_module.SwitchConfig(), path)
    print(f"✓ Wrote default config to {path}")
    print("  Edit it before running: the defaults send nothing useful.")


COMMANDS = {
    "run": cmd_run,
    "web": cmd_web,
    "status": cmd_status,
    "check-smtp": cmd_check_smtp,
    "init-config": cmd_init_config,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deadman", description="Dead man's switch")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--json-logs", action="store_true", help="Log JSON lines to stderr")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write rotating JSON logs here")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Arm the switch (terminal)")
    run.add_argument("--dry-run", action="store_true", help="Log emails instead of sending")

    web = sub.add_parser("web", help="Arm the switch (web)")
    web.add_argument("--dry-run", action="store_true", help="Log emails instead of sending")
    web.add_argument("--host", default=None)
    web.add_argument("--port", type=int, default=None)

    sub.add_parser("status", help="Show configuration")
    sub.add_parser("check-smtp", help="Test SMTP connection")
    sub.add_parser("init-config", help="Write default config")
    return parser


def main(argv: list[str] | None = None):
    """Main entry point."""
    args = build_parser().parse_args(argv)
    COMMANDS[args.command](args)


if __name__ == "__main__":
    main()
