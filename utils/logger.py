import logging
import os

LOGGER_NAME = "dashboard"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str = None, log_file: str = None) -> None:
    """Console output for the menus, plus an optional log file.

    LOG_LEVEL in the environment overrides the default INFO level.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    handlers = [logging.StreamHandler()]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT, handlers=handlers)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def log_info(message: str) -> None:
    _logger.info(message)


def log_success(message: str) -> None:
    _logger.info(f"✅ {message}")


def log_warning(message: str) -> None:
    _logger.warning(message)


def log_error(message: str) -> None:
    _logger.error(message)
