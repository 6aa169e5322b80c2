import logging
import os

logger = logging.getLogger("rankbuddy")


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach a console handler to the package logger (idempotent)."""
    level_name = (level or os.getenv("RANKBUDDY_LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    if not any(getattr(h, "_rankbuddy", False) for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler._rankbuddy = True
        formatter = logging.Formatter("[%(levelname)s] %(asctime)s %(name)s - %(message)s", "%Y-%m-%d %H:%M:%S")
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
    return logger
