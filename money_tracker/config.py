from __future__ import annotations

import os
from pathlib import Path


def _package_root() -> Path:
    # money_tracker/config.py -> money_tracker -> project root
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT: Path = _package_root()

# Data directory (SQLite DB, client cache)
DATA_DIR: Path = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
LOG_DIR: Path = Path(os.getenv("LOG_DIR", str(PROJECT_ROOT / "logs")))

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION: bool = ENVIRONMENT == "production"

# Comma separated list, "*" allows every origin
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

# Client side
API_URL: str = os.getenv("MONEY_TRACKER_API_URL", "http://127.0.0.1:8000/api")
CLIENT_CACHE_PATH: Path = Path(os.getenv("CLIENT_CACHE_PATH", str(DATA_DIR / "client_cache.sqlite3")))
MESSAGE_TIMEOUT_SECONDS: float = float(os.getenv("MESSAGE_TIMEOUT_SECONDS", "5"))
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

TITLE_MAX_LENGTH = 100
TAGS_MAX_LENGTH = 255
