from __future__ import annotations
import os
from decimal import Decimal


def _env_decimal(name: str, default: str) -> Decimal:
    return Decimal(os.environ.get(name, default))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///bookstore.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Shipping fee formula (VND)
    SHIPPING_BASE_FEE = _env_decimal("SHIPPING_BASE_FEE", "15000")
    SHIPPING_PER_KM_FEE = _env_decimal("SHIPPING_PER_KM_FEE", "3000")
    SHIPPING_BASE_DISTANCE_KM = _env_decimal("SHIPPING_BASE_DISTANCE_KM", "5")
    # 0 disables free shipping
    SHIPPING_FREE_THRESHOLD = _env_decimal("SHIPPING_FREE_THRESHOLD", "0")
    # Used at checkout when a delivery order arrives without a quoted fee
    DEFAULT_SHIPPING_FEE = _env_decimal("DEFAULT_SHIPPING_FEE", "25000")
    # Warehouse coordinates used as the route origin for shipping quotes
    SHIPPING_ORIGIN = os.environ.get("SHIPPING_ORIGIN", "10.7769,106.7009")

    # bcrypt cost factor; tests lower it
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    OTP_TTL_MINUTES = int(os.environ.get("OTP_TTL_MINUTES", "5"))
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # Lifetime spend (VND) needed to reach each membership level; levels only go up
    MEMBERSHIP_SILVER_THRESHOLD = _env_decimal("MEMBERSHIP_SILVER_THRESHOLD", "5000000")
    MEMBERSHIP_GOLD_THRESHOLD = _env_decimal("MEMBERSHIP_GOLD_THRESHOLD", "20000000")
    MEMBERSHIP_PLATINUM_THRESHOLD = _env_decimal("MEMBERSHIP_PLATINUM_THRESHOLD", "50000000")

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]
