"""
Ragent - Logging
================
Pre-configured logger factory shared by every Ragent module.

Verbosity:
  • ``settings.LOG_LEVEL`` when set (``"INFO"``, ``"DEBUG"`` …)
  • otherwise ``settings.ENV``: ``"dev"`` → DEBUG, ``"prod"`` → WARNING

HTTP client libraries used by the Pinecone and Gemini SDKs are capped at
WARNING so request-level chatter does not drown the pipeline logs.

Usage:
    from ragent.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[RAG] Something happened")
"""

import logging
import sys

from ragent.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "pinecone", "grpc")
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _resolve_default_level() -> int:
    if settings.LOG_LEVEL:
        level = logging.getLevelName(settings.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
    return _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)


_DEFAULT_LEVEL = _resolve_default_level()

for _name in _NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(max(_DEFAULT_LEVEL, logging.WARNING))


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return a named logger writing to stdout.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit level; defaults to the configured level.
    """
    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(resolved_level)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(resolved_level)
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

        logger.propagate = False

    return logger
