"""Tests for fedilock.core.logging — structlog configuration and context."""

from __future__ import annotations

import json

from fedilock.core.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    def test_json_output_uses_ecs_fields(self, capsys):
        configure_logging(level="INFO", json_format=True, service="fedilock-test", cache_loggers=False)
        get_logger("tests.logging").info("lock_acquired", key="poller:contact-7")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "lock_acquired"
        assert record["key"] == "poller:contact-7"
        assert record["log.level"] == "info"
        assert record["service.name"] == "fedilock-test"
        assert record["log.logger"] == "tests.logging"
        assert "@timestamp" in record

    def test_module_logger_picks_up_later_configuration(self, capsys):
        early = get_logger("fedilock.core.locking.base")
        configure_logging(level="INFO", json_format=True, cache_loggers=False)
        early.info("lock_override_release", key="k")

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["event"] == "lock_override_release"
        assert record["log.logger"] == "fedilock.core.locking.base"

    def test_unnamed_logger(self, capsys):
        configure_logging(level="INFO", json_format=True, cache_loggers=False)
        get_logger().info("lock_service_closed")
        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert "log.logger" not in record

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True, cache_loggers=False)
        get_logger("tests.logging").info("lock_contended", key="k")
        assert capsys.readouterr().err == ""

    def test_console_output(self, capsys):
        configure_logging(level="DEBUG", json_format=False, cache_loggers=False)
        get_logger("tests.logging").debug("lock_released", key="k")
        assert "lock_released" in capsys.readouterr().err


class TestContext:
    def test_bound_context_reaches_events(self, capsys):
        configure_logging(level="INFO", json_format=True, cache_loggers=False)
        bind_context(worker="poller")
        get_logger("tests.logging").info("lock_acquired", key="k")

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["worker"] == "poller"

    def test_log_context_unbinds(self, capsys):
        configure_logging(level="INFO", json_format=True, cache_loggers=False)
        with LogContext(task_id="abc"):
            get_logger().info("inside")
        get_logger().info("outside")

        inside, outside = (json.loads(line) for line in capsys.readouterr().err.strip().splitlines())
        assert inside["task_id"] == "abc"
        assert "task_id" not in outside
