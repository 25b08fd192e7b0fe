import logging
import sys

from livescribe.config import Settings


def setup_logging(settings: Settings) -> None:
    """
    Configure the root livescribe logger from LOG_LEVEL / LOG_FILE.
    If LOG_FILE is set, logs also go to that file; console output is always kept.
    Call once at application startup.
    """
    logger = logging.getLogger("livescribe")

    if logger.handlers:
        return

    level = getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO)
    logger.setLevel(level)
    logger.propagate = False

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
