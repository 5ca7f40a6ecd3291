# backend/posledger/config.py
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

    # SQLite DB stored in backend/instance/posledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Timezone used for "today" and hourly buckets in insights
    LEDGER_TIMEZONE = os.environ.get("LEDGER_TIMEZONE", "UTC")

    # "current": cost of goods from the product's current cost
    # "snapshot": cost captured on the sale line at sale time
    INSIGHTS_COST_BASIS = os.environ.get("INSIGHTS_COST_BASIS", "current")

    # Refund of a sale whose product row no longer exists: skip (True) or fail (False)
    REFUND_SKIP_MISSING_PRODUCTS = _env_bool("REFUND_SKIP_MISSING_PRODUCTS", True)

    # Reject sale lines for soft-deleted products
    REQUIRE_ACTIVE_PRODUCTS_FOR_SALE = _env_bool("REQUIRE_ACTIVE_PRODUCTS_FOR_SALE", False)

    RETENTION_MAX_DAYS = int(os.environ.get("RETENTION_MAX_DAYS", "30"))

    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    }
