"""
Unit tests for chat_engine.utils.logging module.
"""

import logging
import os
from unittest.mock import patch

import pytest

from chat_engine.utils.logging import ENGINE_LOGGER, TRANSPORT_LOGGERS, setup_logging


@pytest.fixture(autouse=True)
def restore_levels():
    names = (ENGINE_LOGGER, *TRANSPORT_LOGGERS)
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_returns_engine_logger(self):
        """Test the package logger is returned."""
        assert setup_logging().name == "chat_engine"

    def test_default_is_quiet(self):
        """Test engine and transports log warnings only without LOG_LEVEL."""
        with patch.dict(os.environ, {}, clear=True):
            logger = setup_logging()
        assert logger.level == logging.WARNING
        for name in TRANSPORT_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_debug_reaches_engine_modules(self):
        """Test debug lowers the whole engine tree to DEBUG."""
        setup_logging(debug=True)
        controller_logger = logging.getLogger("chat_engine.client.controller")
        assert controller_logger.getEffectiveLevel() == logging.DEBUG

    def test_debug_keeps_transports_at_info(self):
        """Test request and frame dumps stay hidden under debug."""
        setup_logging(debug=True)
        for name in TRANSPORT_LOGGERS:
            assert logging.getLogger(name).level == logging.INFO

    def test_level_from_env_var(self):
        """Test LOG_LEVEL sets the engine level."""
        with patch.dict(os.environ, {"LOG_LEVEL": "info"}):
            assert setup_logging().level == logging.INFO

    def test_explicit_level_beats_env(self):
        """Test an explicit level wins over LOG_LEVEL."""
        with patch.dict(os.environ, {"LOG_LEVEL": "INFO"}):
            assert setup_logging(level="ERROR").level == logging.ERROR

    def test_debug_beats_level(self):
        """Test debug wins over an explicit level."""
        assert setup_logging(debug=True, level="ERROR").level == logging.DEBUG

    def test_unknown_level_falls_back_to_warning(self):
        """Test an unknown level name maps to WARNING."""
        assert setup_logging(level="chatty").level == logging.WARNING
