from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DETAILED_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(filename)s:%(lineno)d] %(funcName)s(): %(message)s"


def _has_file_handler(logger: logging.Logger, path: Path) -> bool:
    return any(
        getattr(h, "baseFilename", None) == str(path)
        for h in logger.handlers
        if isinstance(h, logging.FileHandler)
    )


def configure_logging(log_dir: Path) -> None:
    """Configure application logging (file + console) and attach to uvicorn loggers.

    Idempotent: safe to call multiple times.
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    server_log_path = log_dir / "server.log"
    auth_log_path = log_dir / "auth.log"

    formatter = logging.Formatter(FORMAT)

    server_handler = logging.FileHandler(str(server_log_path))
    server_handler.setLevel(logging.DEBUG)
    server_handler.setFormatter(formatter)

    auth_handler = logging.FileHandler(str(auth_log_path))
    auth_handler.setLevel(logging.DEBUG)
    auth_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.INFO)
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if not _has_file_handler(root_logger, server_log_path):
        root_logger.addHandler(server_handler)

    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        root_logger.addHandler(stream_handler)

    # Login / registration attempts
    auth_logger = logging.getLogger("money_tracker.auth")
    auth_logger.setLevel(logging.DEBUG)
    if not _has_file_handler(auth_logger, auth_log_path):
        auth_logger.addHandler(auth_handler)

    for uv_logger_name in ("uvicorn.error", "uvicorn.access", "uvicorn"):
        lg = logging.getLogger(uv_logger_name)
        lg.setLevel(logging.DEBUG)
        if not _has_file_handler(lg, server_log_path):
            lg.addHandler(server_handler)


def setup_production_logging(log_dir: Path) -> None:
    """
    Setup logging for production.
    Separate rotating log files for server, auth and errors (max 10MB, keep 5 files).
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    server_log = log_dir / "server.log"
    auth_log = log_dir / "auth.log"
    error_log = log_dir / "errors.log"

    detailed_formatter = logging.Formatter(DETAILED_FORMAT)
    simple_formatter = logging.Formatter(FORMAT)

    server_handler = RotatingFileHandler(str(server_log), maxBytes=10 * 1024 * 1024, backupCount=5)
    server_handler.setLevel(logging.INFO)
    server_handler.setFormatter(simple_formatter)

    auth_handler = RotatingFileHandler(str(auth_log), maxBytes=10 * 1024 * 1024, backupCount=5)
    auth_handler.setLevel(logging.DEBUG)
    auth_handler.setFormatter(detailed_formatter)

    error_handler = RotatingFileHandler(str(error_log), maxBytes=10 * 1024 * 1024, backupCount=5)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)

    # Only warnings and errors on the console
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(simple_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    if not _has_file_handler(root_logger, server_log):
        root_logger.addHandler(server_handler)
        root_logger.addHandler(error_handler)
        root_logger.addHandler(console_handler)

    auth_logger = logging.getLogger("money_tracker.auth")
    auth_logger.setLevel(logging.DEBUG)
    if not _has_file_handler(auth_logger, auth_log):
        auth_logger.addHandler(auth_handler)

    for uv_logger_name in ("uvicorn.error", "uvicorn.access", "uvicorn"):
        uv_logger = logging.getLogger(uv_logger_name)
        uv_logger.setLevel(logging.INFO)
        if not _has_file_handler(uv_logger, server_log):
            uv_logger.addHandler(server_handler)
            uv_logger.addHandler(error_handler)

    startup_logger = logging.getLogger("money_tracker.startup")
    startup_logger.info("Production logging configured successfully")
    startup_logger.info(f"Log files location: {log_dir}")


def log_environment_info() -> None:
    """Log important environment information for debugging."""
    env_logger = logging.getLogger("money_tracker.environment")

    env_info = {
        "PYTHON_VERSION": sys.version,
        "PLATFORM": sys.platform,
        "WORKING_DIRECTORY": os.getcwd(),
        "ENVIRONMENT_VARIABLES": {
            "ENVIRONMENT": os.environ.get("ENVIRONMENT"),
            "MONEY_TRACKER_DB_PATH": os.environ.get("MONEY_TRACKER_DB_PATH"),
            "CORS_ALLOW_ORIGINS": os.environ.get("CORS_ALLOW_ORIGINS"),
            "FORCE_DB_RESET": os.environ.get("FORCE_DB_RESET"),
        },
    }

    env_logger.info("Environment information:")
    for key, value in env_info.items():
        env_logger.info(f"  {key}: {value}")
