"""
Centralized Logging Configuration for the Resume Match API
"""
import functools
import logging
import logging.config
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

ROOT_LOGGER = "resume_match"

# Third-party loggers that are chatty at INFO/WARNING while parsing documents
NOISY_LOGGERS = {
    "pdfminer": "ERROR",
    "urllib3": "WARNING",
    "multipart": "WARNING",
    "httpx": "WARNING",
}

LOG_FORMATS = {
    "simple": "%(levelname)s - %(name)s - %(message)s",
    "detailed": "%(asctime)s | %(levelname)-8s | %(name)-36s | %(funcName)-24s:%(lineno)-4d | %(message)s",
    "json": '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
}

# ENVIRONMENT -> setup_logging kwargs; "level": None means LOG_LEVEL decides
LOG_PROFILES: Dict[str, Dict[str, Any]] = {
    "production": {"level": None, "enable_file": True, "format_style": "json"},
    "development": {"level": "DEBUG", "enable_file": True, "format_style": "detailed"},
    "testing": {"level": "WARNING", "enable_file": False, "format_style": "simple"},
}


def _rotating_handler(path: Path, level: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filename": str(path),
        "maxBytes": 10 * 1024 * 1024,
        "backupCount": 5,
        "encoding": "utf8",
    }


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = True,
    format_style: str = "detailed"
) -> None:
    """
    Setup centralized logging configuration

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the daily log files (LOG_DIR, default ``logs``)
        enable_console: Log to stdout
        enable_file: Log to ``resume_match_YYYYMMDD.log`` plus a separate errors file
        format_style: 'simple', 'detailed' or 'json'
    """
    directory = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    stamp = datetime.now().strftime('%Y%m%d')
    log_file = directory / f"resume_match_{stamp}.log"

    handlers: Dict[str, Any] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "main",
            "stream": "ext://sys.stdout",
        }
    if enable_file:
        directory.mkdir(parents=True, exist_ok=True)
        handlers["file"] = _rotating_handler(log_file, level)
        handlers["error_file"] = _rotating_handler(directory / f"resume_match_errors_{stamp}.log", "ERROR")

    names = list(handlers)
    loggers: Dict[str, Any] = {
        "": {"level": level, "handlers": names, "propagate": False},
        "uvicorn": {"level": "INFO", "handlers": [n for n in names if n != "error_file"], "propagate": False},
        "uvicorn.access": {"level": "INFO", "handlers": [n for n in names if n == "console"], "propagate": False},
    }
    loggers.update({name: {"level": noisy} for name, noisy in NOISY_LOGGERS.items()})

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "main": {"format": LOG_FORMATS.get(format_style, LOG_FORMATS["detailed"]), "datefmt": "%Y-%m-%d %H:%M:%S"},
            "detailed": {"format": LOG_FORMATS["detailed"], "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": handlers,
        "loggers": loggers,
    })

    logger = get_logger("logging")
    logger.info(f"Logging configured - Level: {level}, Console: {enable_console}, File: {enable_file}")
    if enable_file:
        logger.info(f"Log file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``resume_match`` namespace"""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_api_call(operation: str):
    """
    Decorator timing an async route handler.

    Logs start, completion and failure; exceptions are re-raised for the
    exception middleware to map.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(f"api.{func.__module__}")
            started = time.perf_counter()
            logger.info(f"API {operation} started")
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - started
                logger.error(f"API {operation} failed after {elapsed:.3f}s: {e}",
                             extra={"execution_time": elapsed})
                raise
            elapsed = time.perf_counter() - started
            logger.info(f"API {operation} completed in {elapsed:.3f}s", extra={"execution_time": elapsed})
            return result

        return wrapper
    return decorator


def configure_for_environment():
    """Configure logging from ENVIRONMENT and LOG_LEVEL"""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    profile = dict(LOG_PROFILES.get(environment, {}))
    profile["level"] = profile.get("level") or log_level
    setup_logging(**profile)


class PerformanceMonitor:
    """Times a block and logs it, at WARNING once it crosses ``threshold_ms``"""

    def __init__(self, operation_name: str, logger: logging.Logger = None, threshold_ms: float = 1000):
        self.operation_name = operation_name
        self.logger = logger or get_logger("performance")
        self.threshold_ms = threshold_ms
        self.started = None
        self.elapsed_ms = 0.0

    def __enter__(self):
        self.started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self.started) * 1000

        if exc_type is not None:
            self.logger.error(f"{self.operation_name} failed after {self.elapsed_ms:.0f}ms: {exc_val}")
        elif self.elapsed_ms > self.threshold_ms:
            self.logger.warning(
                f"{self.operation_name} took {self.elapsed_ms:.0f}ms (threshold {self.threshold_ms:.0f}ms)"
            )
        else:
            self.logger.debug(f"{self.operation_name} completed in {self.elapsed_ms:.0f}ms")
        return False
