# backend/costledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/costledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///costledger.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Unit-of-work retry policy for store-level write conflicts
    COSTLEDGER_UOW_ATTEMPTS = int(os.environ.get("COSTLEDGER_UOW_ATTEMPTS", "5"))
    COSTLEDGER_UOW_BACKOFF = float(os.environ.get("COSTLEDGER_UOW_BACKOFF", "0.05"))

    # SQLite: take the write lock when the unit of work opens
    COSTLEDGER_SQLITE_IMMEDIATE = _env_bool("COSTLEDGER_SQLITE_IMMEDIATE", True)

    # Rows returned by cost-history reads and kept by `flask costs prune-history`
    COST_HISTORY_LIMIT = int(os.environ.get("COST_HISTORY_LIMIT", "50"))
