# backend/servicedesk/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///servicedesk.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Ledger transactions: bounded in seconds, retried on store conflicts
    LEDGER_TX_TIMEOUT_SECONDS = int(os.environ.get("LEDGER_TX_TIMEOUT_SECONDS", "5"))
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))

    # Billing defaults (tenant tax rate wins over DEFAULT_TAX_RATE when set)
    DEFAULT_TAX_RATE = float(os.environ.get("DEFAULT_TAX_RATE", "16.0"))
    DEFAULT_PAYMENT_TERMS_DAYS = int(os.environ.get("DEFAULT_PAYMENT_TERMS_DAYS", "30"))

    QUOTE_NUMBER_PREFIX = "COT"
    INVOICE_NUMBER_PREFIX = "FAC"

    # Browser front-ends allowed to call the API (comma-separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )
