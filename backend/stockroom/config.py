# backend/stockroom/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockroom.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Display formatting for money fields (raw cents are always sent alongside)
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₹")
    CURRENCY_GROUPING = os.environ.get("CURRENCY_GROUPING", "indian")

    # Reorder advisor fallback when a product has no reorder quantity and no maximum stock
    REORDER_DEFAULT_QUANTITY = int(os.environ.get("REORDER_DEFAULT_QUANTITY", "10"))

    # Products expiring within this many days count as "expiring" on the dashboard
    EXPIRY_WARNING_DAYS = int(os.environ.get("EXPIRY_WARNING_DAYS", "30"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # Ledger writes are retried on lock / stale version conflicts
    LOCK_RETRY_ATTEMPTS = int(os.environ.get("LOCK_RETRY_ATTEMPTS", "3"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    )
