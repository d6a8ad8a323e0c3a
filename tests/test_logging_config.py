"""Tests for logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from mars_orchestrator.logging_config import setup_logging


@pytest.fixture
def logger_name(request):
	name = f"mars_test.{request.node.name}"
	yield name
	logger = logging.getLogger(name)
	for handler in list(logger.handlers):
		handler.close()
		logger.removeHandler(handler)


class TestSetupLogging:
	def test_console_only(self, logger_name):
		logger = setup_logging(level="WARNING", name=logger_name)
		assert logger.level == logging.WARNING
		assert len(logger.handlers) == 1
		assert not isinstance(logger.handlers[0], RotatingFileHandler)

	def test_file_handler(self, logger_name, tmp_path):
		"""A log dir adds a rotating file handler that records debug output."""
		logger = setup_logging(level="INFO", log_dir=tmp_path / "logs", name=logger_name)
		file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
		assert len(file_handlers) == 1
		assert file_handlers[0].level == logging.DEBUG
		assert (tmp_path / "logs").is_dir()

	def test_no_duplicate_handlers(self, logger_name):
		setup_logging(name=logger_name)
		logger = setup_logging(level="DEBUG", name=logger_name)
		assert len(logger.handlers) == 1
		assert logger.level == logging.DEBUG

	def test_level_from_env(self, logger_name, monkeypatch):
		monkeypatch.setenv("MARS_LOG_LEVEL", "ERROR")
		assert setup_logging(name=logger_name).level == logging.ERROR

	def test_unknown_level_defaults_to_info(self, logger_name):
		assert setup_logging(level="chatty", name=logger_name).level == logging.INFO
