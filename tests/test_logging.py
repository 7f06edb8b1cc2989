from __future__ import annotations

import logging

from newsdesk.core.config import Settings
from newsdesk.core.logging import CHATTY_LOGGERS, configure_logging


def test_http_client_loggers_are_quieted_outside_debug() -> None:
    configure_logging(Settings(database_url="sqlite:///:memory:", log_level="info"))

    for name in CHATTY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_http_client_loggers_follow_debug_level() -> None:
    configure_logging(Settings(database_url="sqlite:///:memory:", log_level="debug"))

    for name in CHATTY_LOGGERS:
        assert logging.getLogger(name).level == logging.DEBUG
