# backend/goldledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/goldledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///goldledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Optimistic-lock / deadlock retry policy for ledger writes
    GOLD_RETRY_ATTEMPTS = int(os.environ.get("GOLD_RETRY_ATTEMPTS", "3"))
    GOLD_RETRY_BACKOFF = float(os.environ.get("GOLD_RETRY_BACKOFF", "0.1"))

    GOLD_DEFAULT_CURRENCY = os.environ.get("GOLD_DEFAULT_CURRENCY", "USD")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
