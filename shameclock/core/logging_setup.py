import logging
from logging.handlers import RotatingFileHandler

from shameclock.core.paths import ensure_logs_dir, log_file


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    ensure_logs_dir()
    logger = logging.getLogger("shameclock")
    logger.setLevel(level)

    if not logger.handlers:
        handler = RotatingFileHandler(
            log_file(),
            maxBytes=1_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    return logger
