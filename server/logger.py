"""
Server logging module.

Console logging for the relay. Modules get their own logger with
``logging.getLogger(__name__)``; this only configures where it goes.
"""

import logging

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level="INFO") -> logging.Logger:
    """Attach a console handler to the root logger and set the level."""
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"unknown log level: {level!r}")
        level = numeric

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console_handler)

    # The websockets library logs every failed handshake (e.g. plain GET /ws) at INFO
    logging.getLogger("websockets").setLevel(max(level, logging.WARNING))
    return root
