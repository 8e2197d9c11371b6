# backend/paneteria/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/paneteria.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///paneteria.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shown on the public menu
    BUSINESS_NAME = os.environ.get("BUSINESS_NAME", "Panetto di Cris")
    CURRENCY_CODE = os.environ.get("CURRENCY_CODE", "BRL")

    # Subscribe the dashboard store to the change feed when a session opens
    REALTIME_ENABLED = _env_flag("REALTIME_ENABLED", True)

    RECENT_ORDERS_LIMIT = int(os.environ.get("RECENT_ORDERS_LIMIT", "5"))
