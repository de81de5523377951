# backend/shopledger/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Sales and returns only change quantities unless this is on
    SHOPLEDGER_RECORD_SALE_MOVEMENTS = _env_flag("SHOPLEDGER_RECORD_SALE_MOVEMENTS")

    # Placeholder customer name used by the checkout screen for anonymous sales
    SHOPLEDGER_WALK_IN_CUSTOMER = os.environ.get("SHOPLEDGER_WALK_IN_CUSTOMER", "Walk-in Customer")

    # Attempts for read-modify-write operations that hit a version conflict
    SHOPLEDGER_RETRY_ATTEMPTS = int(os.environ.get("SHOPLEDGER_RETRY_ATTEMPTS", "3"))
