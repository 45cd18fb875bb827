"""
Configuration — environment-driven Settings.

    from storefront.config import load_settings

    settings = load_settings()
    settings.tax_rate  # 0.18

Values come from the process environment after `.env` is loaded.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int) -> int:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Immutable runtime configuration.

    Note: Tests derive variants with dataclasses.replace().
    """

    database_url: str = "sqlite+aiosqlite:///./storefront.db"
    jwt_secret: str = "change-me"
    user_token_ttl_hours: int = 24 * 7
    password_hash_rounds: int = 12
    guest_session_ttl_days: int = 30
    max_line_quantity: int = 10

    # Money
    currency: str = "INR"
    tax_rate: float = 0.18
    flat_shipping_fee: int = 99
    free_shipping_threshold: int = 2000

    # Payment gateway: "sandbox" (in-process) or "razorpay"
    payment_gateway: str = "sandbox"
    payment_key_id: str = "rzp_test_key"
    payment_key_secret: str = "rzp_test_secret"
    payment_api_url: str = "https://api.razorpay.com"
    payment_timeout_seconds: float = 10.0

    # JSON file of sellable variants; empty catalog when unset
    catalog_path: str | None = None

    # Delivery area
    delivery_state: str = "Kerala"
    delivery_country: str = "India"
    delivery_pin_min: int = 670000
    delivery_pin_max: int = 695999

    log_level: str = "INFO"


def load_settings(dotenv_path: str | None = None) -> Settings:
    """Load `.env` (if present) and build Settings from the environment."""
    load_dotenv(dotenv_path=dotenv_path)
    defaults = Settings()

    return Settings(
        database_url=_get_env("DATABASE_URL", default=defaults.database_url)
        or defaults.database_url,
        jwt_secret=_get_env("JWT_SECRET", "SECRET_KEY", default=defaults.jwt_secret)
        or defaults.jwt_secret,
        user_token_ttl_hours=_get_int(
            "USER_TOKEN_TTL_HOURS", default=defaults.user_token_ttl_hours
        ),
        password_hash_rounds=_get_int(
            "BCRYPT_ROUNDS", default=defaults.password_hash_rounds
        ),
        guest_session_ttl_days=_get_int(
            "GUEST_SESSION_TTL_DAYS", default=defaults.guest_session_ttl_days
        ),
        max_line_quantity=_get_int(
            "MAX_LINE_QUANTITY", default=defaults.max_line_quantity
        ),
        currency=_get_env("CURRENCY", default=defaults.currency) or defaults.currency,
        tax_rate=_get_float("TAX_RATE", default=defaults.tax_rate),
        flat_shipping_fee=_get_int(
            "FLAT_SHIPPING_FEE", default=defaults.flat_shipping_fee
        ),
        free_shipping_threshold=_get_int(
            "FREE_SHIPPING_THRESHOLD", default=defaults.free_shipping_threshold
        ),
        payment_gateway=_get_env("PAYMENT_GATEWAY", default=defaults.payment_gateway)
        or defaults.payment_gateway,
        payment_key_id=_get_env(
            "PAYMENT_KEY_ID", "RAZORPAY_KEY_ID", default=defaults.payment_key_id
        )
        or defaults.payment_key_id,
        payment_key_secret=_get_env(
            "PAYMENT_KEY_SECRET",
            "RAZORPAY_KEY_SECRET",
            default=defaults.payment_key_secret,
        )
        or defaults.payment_key_secret,
        payment_api_url=_get_env("PAYMENT_API_URL", default=defaults.payment_api_url)
        or defaults.payment_api_url,
        payment_timeout_seconds=_get_float(
            "PAYMENT_TIMEOUT_SECONDS", default=defaults.payment_timeout_seconds
        ),
        catalog_path=_get_env("CATALOG_PATH", default=defaults.catalog_path),
        delivery_state=_get_env("DELIVERY_STATE", default=defaults.delivery_state)
        or defaults.delivery_state,
        delivery_country=_get_env(
            "DELIVERY_COUNTRY", default=defaults.delivery_country
        )
        or defaults.delivery_country,
        delivery_pin_min=_get_int("DELIVERY_PIN_MIN", default=defaults.delivery_pin_min),
        delivery_pin_max=_get_int("DELIVERY_PIN_MAX", default=defaults.delivery_pin_max),
        log_level=_get_env("LOG_LEVEL", default=defaults.log_level) or defaults.log_level,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


__all__ = ("Settings", "load_settings", "configure_logging")
