# backend/toolaudit/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/toolaudit.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///toolaudit.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Calibration window: items due within this many days show as "for calibration"
    CALIBRATION_THRESHOLD_DAYS = _int_env("CALIBRATION_THRESHOLD_DAYS", 7)

    # EQ5044 printout width (most recent N audit snapshots become columns)
    EQ5044_MAX_AUDIT_COLUMNS = _int_env("EQ5044_MAX_AUDIT_COLUMNS", 12)

    # Every Nth snapshot of a storage needs supervisor sign-off
    SUPERVISOR_SIGNOFF_INTERVAL = _int_env("SUPERVISOR_SIGNOFF_INTERVAL", 6)

    FRONTEND_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "FRONTEND_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]
