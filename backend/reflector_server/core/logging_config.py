from __future__ import annotations

import logging

_NOISY_LOGGERS: tuple[str, ...] = (
    "httpx",
    "httpcore",
    "httpcore.connection",
    "httpcore.http11",
    "urllib3",
    "urllib3.connectionpool",
    "uvicorn.access",
)


def _ensure_stream_handler(logger: logging.Logger) -> None:
    handler_exists = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    if handler_exists:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
    logger.addHandler(handler)


def resolve_level(level_name: str | None) -> int:
    value = getattr(logging, (level_name or 'INFO').upper(), None)
    if isinstance(value, int):
        return value
    return logging.INFO


def configure_logging(level_name: str | None = None) -> None:
    """Configure the root logger and quiet chatty HTTP client loggers."""

    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(level_name))
    _ensure_stream_handler(root_logger)

    for noisy_name in _NOISY_LOGGERS:
        logger = logging.getLogger(noisy_name)
        if logger.level < logging.WARNING:
            logger.setLevel(logging.WARNING)
