# backend/telecom_ops/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(name)
    if not raw:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance folder by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///telecom_ops.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = _env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        ],
    )

    CURRENCY = os.environ.get("CURRENCY", "DA")

    # Off-hours rule evaluates the sale's creation hour in this zone
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")
    BUSINESS_HOURS_START = _env_int("BUSINESS_HOURS_START", 8)
    BUSINESS_HOURS_END = _env_int("BUSINESS_HOURS_END", 18)

    ANOMALY_WINDOW_DAYS = _env_int("ANOMALY_WINDOW_DAYS", 30)
    ANOMALY_AMOUNT_FLOOR_CENTS = _env_int("ANOMALY_AMOUNT_FLOOR_CENTS", 5_000_000)
    ANOMALY_SPIKE_MULTIPLIER = _env_int("ANOMALY_SPIKE_MULTIPLIER", 3)
    ANOMALY_RAPID_EDIT_MINUTES = _env_int("ANOMALY_RAPID_EDIT_MINUTES", 2)

    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 20)

    INVOICE_DUE_DAYS = _env_int("INVOICE_DUE_DAYS", 30)

    REFERENCE_RETRY_ATTEMPTS = _env_int("REFERENCE_RETRY_ATTEMPTS", 5)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
