# backend/wholesale/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/wholesale.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///wholesale.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Source behavior: one customer flag gates both flat and percentage tax.
    # Set False to let percentage tax apply regardless of apply_flat_tax.
    PERCENTAGE_TAX_REQUIRES_FLAT_TAX_FLAG = _env_bool("PERCENTAGE_TAX_REQUIRES_FLAT_TAX_FLAG", True)

    # Loyalty accrual: basis points of the eligible subtotal, 1 point = 1 cent
    LOYALTY_EARN_BPS = _env_int("LOYALTY_EARN_BPS", 200)
    LOYALTY_EXCLUDE_TOBACCO = _env_bool("LOYALTY_EXCLUDE_TOBACCO", True)

    # Retries for the order + lines + audit commit
    PRICING_COMMIT_ATTEMPTS = _env_int("PRICING_COMMIT_ATTEMPTS", 3)
