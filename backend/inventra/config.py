# backend/inventra/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///inventra.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared secret for the scheduled sweep endpoints (/api/cron/*)
    CRON_SECRET = os.environ.get("CRON_SECRET")

    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "15"))

    # Hosted product images. Deletion is skipped when no URL is configured.
    IMAGE_HOST_DELETE_URL = os.environ.get("IMAGE_HOST_DELETE_URL")
    IMAGE_HOST_API_KEY = os.environ.get("IMAGE_HOST_API_KEY")
    IMAGE_HOST_TIMEOUT = float(os.environ.get("IMAGE_HOST_TIMEOUT", "10"))

    CORS_ALLOWED_ORIGINS = os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    )

    # CSV uploads are capped at 5 MB
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024
