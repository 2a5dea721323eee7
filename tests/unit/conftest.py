"""Shared fixtures for unit tests."""

import logging

import pytest


@pytest.fixture(autouse=True)
def isolate_project_logger():
    """Route project records to caplog and undo configure_logging() side effects."""
    logger = logging.getLogger("siteserve")
    saved_propagate, saved_level = logger.propagate, logger.level
    saved_handlers = list(logger.handlers)
    logger.propagate = True
    yield
    for handler in logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    logger.handlers[:] = saved_handlers
    logger.propagate, logger.level = saved_propagate, saved_level
