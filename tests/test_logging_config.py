"""
Test suite for logging setup.
"""

import pytest
import logging

from rich.logging import RichHandler

from ecdh_files_cli.logging_config import PACKAGE_LOGGER, configure_logging


class TestConfigureLogging:
    """Test handler installation on the package logger."""

    def test_plain_handler(self):
        logger = configure_logging(logging.INFO, use_rich=False)

        assert logger is logging.getLogger(PACKAGE_LOGGER)
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], RichHandler)
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_rich_handler(self):
        logger = configure_logging(use_rich=True)

        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0], RichHandler)

    def test_level_names(self):
        assert configure_logging("debug", use_rich=False).level == logging.DEBUG
        assert configure_logging("LOUD", use_rich=False).level == logging.WARNING

    def test_reconfiguring_replaces_handler(self):
        configure_logging(use_rich=True)
        logger = configure_logging(use_rich=False)

        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], RichHandler)


if __name__ == "__main__":
    pytest.main([__file__])
