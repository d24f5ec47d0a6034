"""Console logging setup for applications embedding Interlinear."""

from __future__ import annotations

import logging

PACKAGE_LOGGER = "interlinear"
CONSOLE_FORMAT = "%(levelname)-8s | %(name)-20s | %(message)s"
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def setup_logging(level: int = logging.INFO, *, provider_debug: bool = False) -> logging.Logger:
    """Attach a console handler to the ``interlinear`` logger.

    With ``provider_debug`` the providers module logs full prompts and raw
    responses at DEBUG regardless of ``level``.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if provider_debug else level)

    for handler in list(logger.handlers):
        if getattr(handler, "_interlinear_console", False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if provider_debug else level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler._interlinear_console = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)

    if provider_debug:
        logging.getLogger(f"{PACKAGE_LOGGER}.providers").setLevel(logging.DEBUG)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging initialised at %s", logging.getLevelName(level))
    return logger
