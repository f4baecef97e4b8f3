"""Tests for the structlog setup."""

from __future__ import annotations

import logging

from fitgame.config import Settings
from fitgame.middleware.logging import QUIET_LOGGERS, _add_deployment, setup_logging


def make_settings(**overrides) -> Settings:
    return Settings(database_url="sqlite+aiosqlite:///:memory:", **overrides)


class TestDeploymentFields:
    def test_service_and_environment_are_added(self):
        processor = _add_deployment(make_settings(environment="staging"))
        event = processor(None, "info", {"event": "request_finished"})
        assert event["service"] == "fitgame"
        assert event["environment"] == "staging"

    def test_explicit_fields_are_kept(self):
        processor = _add_deployment(make_settings(environment="staging"))
        event = processor(None, "info", {"event": "x", "service": "worker"})
        assert event["service"] == "worker"


class TestSetupLogging:
    def test_quiet_loggers_stay_at_warning(self):
        setup_logging(make_settings(log_format="console", log_level="DEBUG"))
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_quiet_loggers_follow_a_stricter_level(self):
        setup_logging(make_settings(log_format="json", log_level="ERROR"))
        assert logging.getLogger("sqlalchemy.engine").level == logging.ERROR
