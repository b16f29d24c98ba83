"""
Logging setup for the chat-engine front-end.

Engine modules only create ``logging.getLogger(__name__)`` loggers. The CLI
calls ``setup_logging()`` once to attach a handler and pick levels for the
``chat_engine`` tree and the transport libraries underneath it.
"""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

ENGINE_LOGGER = "chat_engine"

# Log every request and frame at DEBUG
TRANSPORT_LOGGERS = ("httpx", "httpcore", "websockets")


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    return number if isinstance(number, int) else logging.WARNING


def setup_logging(debug: bool = False, level: str | None = None) -> logging.Logger:
    """
    Attach a stderr handler and set the engine log level.

    Args:
        debug: Engine logs at DEBUG ([STATE], [OVERLAP], [LISTEN] lines) and
            transport libraries at INFO. Overrides level.
        level: Engine level otherwise. Defaults to LOG_LEVEL env var or WARNING.

    Returns:
        The ``chat_engine`` package logger
    """
    if debug:
        level = "DEBUG"
    elif level is None:
        level = os.getenv("LOG_LEVEL", "WARNING")

    # stdout carries the streamed reply
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, stream=sys.stderr)

    engine = logging.getLogger(ENGINE_LOGGER)
    engine.setLevel(_level_number(level))
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if debug else logging.WARNING)
    return engine
