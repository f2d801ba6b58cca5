# backend/criollo/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/criollo.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///criollo.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Business policy: accept invoices for orders still PENDING (default: DELIVERED only)
    ALLOW_INVOICE_PENDING_ORDERS = _env_flag("ALLOW_INVOICE_PENDING_ORDERS")

    # Payer printed on invoices when no customer or ad-hoc payer is given
    DEFAULT_PAYER_NAME = os.environ.get("DEFAULT_PAYER_NAME", "Consumidor Final")

    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "5"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
    ALLOW_INVOICE_PENDING_ORDERS = False
