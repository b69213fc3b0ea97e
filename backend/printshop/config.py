# Overview: Environment-driven configuration for the PrintShop backend.

# backend/printshop/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/printshop.sqlite3 unless overridden
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///printshop.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public storefront URL, used for payment gateway callbacks
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:3000")
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))

    # Slicing service (SuperSlice)
    SUPERSLICE_API_URL = os.environ.get("SUPERSLICE_API_URL", "http://localhost:8000")
    SLICER_TIMEOUT_SECONDS = float(os.environ.get("SLICER_TIMEOUT_SECONDS", "300"))

    # RajaOngkir (Komerce)
    RAJAONGKIR_API_KEY = os.environ.get("RAJAONGKIR_API_KEY", "")
    RAJAONGKIR_BASE_URL = os.environ.get("RAJAONGKIR_BASE_URL", "https://rajaongkir.komerce.id/api/v1")
    RAJAONGKIR_ORIGIN_ID = int(os.environ.get("RAJAONGKIR_ORIGIN_ID", "73633"))
    SHIPPING_CACHE_TTL_HOURS = int(os.environ.get("SHIPPING_CACHE_TTL_HOURS", "24"))

    # Midtrans Snap
    MIDTRANS_SERVER_KEY = os.environ.get("MIDTRANS_SERVER_KEY", "")
    MIDTRANS_CLIENT_KEY = os.environ.get("MIDTRANS_CLIENT_KEY", "")
    MIDTRANS_IS_PRODUCTION = _env_bool("MIDTRANS_IS_PRODUCTION", "false")
    PAYMENT_EXPIRY_HOURS = int(os.environ.get("PAYMENT_EXPIRY_HOURS", "24"))

    # Uploads
    MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(500 * 1024 * 1024)))
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES + 1024 * 1024
    PROFILE_PICTURE_MAX_BYTES = int(os.environ.get("PROFILE_PICTURE_MAX_BYTES", str(2 * 1024 * 1024)))
    TEMP_FILE_TTL_HOURS = int(os.environ.get("TEMP_FILE_TTL_HOURS", "24"))

    # Scheduled jobs (cleanup endpoint bearer secret)
    CRON_SECRET = os.environ.get("CRON_SECRET", "")

    # Order file finalization
    FINALIZE_FILES_INLINE = _env_bool("FINALIZE_FILES_INLINE", "true")
    FINALIZE_MAX_ATTEMPTS = int(os.environ.get("FINALIZE_MAX_ATTEMPTS", "5"))
    FINALIZE_BACKOFF_SECONDS = int(os.environ.get("FINALIZE_BACKOFF_SECONDS", "30"))
