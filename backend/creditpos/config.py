# backend/creditpos/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored next to the process by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///creditpos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # How the payment allocator reduces a client's aggregate debt:
    # FULL_AMOUNT, APPLIED_AMOUNT or REJECT_OVERPAYMENT
    ALLOCATION_DEBT_POLICY = os.environ.get("ALLOCATION_DEBT_POLICY", "FULL_AMOUNT")

    # Per-step retry on lock/version conflicts
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
