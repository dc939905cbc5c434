"""
Tests for the terminal front-end.
"""

import json
import logging

import pytest
import yaml

from cli.main import _setup_logging, build_parser, format_status, handle_key, main
from deadman.daemon import SwitchDaemon
from deadman.timer import TimerPhase, TimerStatus


@pytest.fixture
def daemon(config, clock, fake_transport):
    return SwitchDaemon(config, transport=fake_transport, clock=clock, window=0)


class TestFormatStatus:
    def test_full_bar(self):
        line = format_status(TimerStatus(TimerPhase.WARNING, 100.0, 100, "1 minute(s)", 0))
        assert line.startswith("Warning timer")
        assert "█" * 20 in line
        assert line.endswith("1 minute(s) left")

    def test_half_bar(self):
        line = format_status(TimerStatus(TimerPhase.DEAD_MAN, 50.0, 50, "50 second(s)", 1))
        assert line.startswith("Dead Man's Switch timer")
        assert "█" * 10 + "░" * 10 in line

    def test_triggered(self):
        line = format_status(TimerStatus(TimerPhase.TRIGGERED, 0.0, 0, "0 second(s)", 1))
        assert line == "Triggered: the final message has been sent"


class TestHandleKey:
    def test_check_in(self, daemon, capsys):
        assert handle_key(daemon, "c\n") is True
        assert daemon.engine.snapshot().generation == 1
        assert "Checked in" in capsys.readouterr().out

    def test_status(self, daemon, capsys):
        assert handle_key(daemon, "s") is True
        assert "Warning timer" in capsys.readouterr().out

    def test_quit(self, daemon):
        assert handle_key(daemon, "q") is False
        assert handle_key(daemon, "QUIT") is False

    def test_unknown_key(self, daemon, capsys):
        assert handle_key(daemon, "x") is True
        assert "Unknown key" in capsys.readouterr().out

    def test_check_in_after_trigger(self, daemon, capsys):
        daemon.engine.tick(now=2.0)
        daemon.engine.tick(now=5.0)
        daemon.wait_for_dispatches(timeout=2)
        before = daemon.engine.snapshot()

        assert handle_key(daemon, "c") is True
        assert "already triggered" in capsys.readouterr().out
        assert daemon.engine.snapshot() == before


class TestCommands:
    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_init_config_writes_defaults(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        main(["--config", str(path), "init-config"])
        assert path.exists()
        assert "timer_warning" in yaml.safe_load(path.read_text())

        main(["--config", str(path), "init-config"])
        assert "already exists" in capsys.readouterr().out

    def test_status_command(self, tmp_path, capsys, config):
        from deadman import config as config_module

        path = tmp_path / "config.yaml"
        config_module.save(config, path)
        main(["--config", str(path), "status"])
        out = capsys.readouterr().out
        assert "2 second(s)" in out
        assert "someone@example.com" in out

    def test_invalid_config_exits_2(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("timer_warning: 0\nweb_password: p\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(path), "status"])
        assert exc_info.value.code == 2

    def test_recipient_list_exits_2(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("to:\n  - a@example.com\nweb_password: p\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(path), "status"])
        assert exc_info.value.code == 2
        assert "to must be a string" in capsys.readouterr().err

    def test_check_smtp_failure_exits_1(self, tmp_path, monkeypatch, config):
        import smtplib

        from deadman import config as config_module

        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        path = tmp_path / "config.yaml"
        config_module.save(config, path)
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(path), "check-smtp"])
        assert exc_info.value.code == 1


class TestLoggingSetup:
    """--log-file and the config's log settings reach the root logger."""

    @pytest.fixture(autouse=True)
    def _restore_root_logger(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        yield
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            if handler not in saved_handlers:
                handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)

    def test_log_file_flag(self, tmp_path, config):
        log_file = tmp_path / "logs" / "deadman.log"
        args = build_parser().parse_args(["--log-file", str(log_file), "--log-level", "DEBUG", "run"])
        _setup_logging(args, config)

        logging.getLogger("deadman.test").info("armed")
        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "armed"
        assert logging.getLogger().level == logging.DEBUG

    def test_log_settings_from_config(self, tmp_path, config):
        log_file = tmp_path / "from-config.log"
        args = build_parser().parse_args(["run"])
        _setup_logging(args, config.with_overrides(log_level="WARNING", log_file=str(log_file)))

        logging.getLogger("deadman.test").warning("late")
        assert logging.getLogger().level == logging.WARNING
        assert "late" in log_file.read_text()

    def test_flag_overrides_config(self, tmp_path, config):
        flag_file = tmp_path / "flag.log"
        args = build_parser().parse_args(["--log-file", str(flag_file), "run"])
        _setup_logging(args, config.with_overrides(log_file=str(tmp_path / "config.log")))

        logging.getLogger("deadman.test").warning("where")
        assert flag_file.exists()
        assert not (tmp_path / "config.log").exists()
