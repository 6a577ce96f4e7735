"""
Runtime configuration for the Rythu Dipo backend.

Settings are read from the environment exactly once, at process start, and
handed to the app factory. Nothing below the app factory calls os.getenv.
"""
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

BASE_DIR = Path(__file__).resolve().parent


class Settings(BaseModel):
    environment: str = "development"
    log_level: str = "INFO"

    mongodb_uri: str = "mongodb://localhost:27017"
    database_name: str = "rythu_dipo"

    jwt_secret: str = "devsecret"
    jwt_algorithm: str = "HS256"
    token_ttl_days: int = Field(30, ge=1)

    bcrypt_rounds: int = Field(12, ge=4, le=31)
    otp_ttl_minutes: int = Field(10, ge=1)
    otp_max_resends: int = Field(5, ge=0)
    otp_resend_cooldown_seconds: int = Field(60, ge=0)

    order_number_prefix: str = "RD"
    shipping_cost: float = Field(0, ge=0)

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_use_ssl: bool = False
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_timeout: float = 10.0
    mail_from: Optional[str] = None
    order_notification_email: Optional[str] = None

    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]
    catalog_path: Path = BASE_DIR / "data" / "products.json"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def mail_configured(self) -> bool:
        return bool(self.smtp_host)

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {}

        def put(field, *names, cast=str):
            for name in names:
                raw = env.get(name)
                if raw not in (None, ""):
                    values[field] = cast(raw)
                    return

        put("environment", "ENVIRONMENT", "NODE_ENV")
        put("log_level", "LOG_LEVEL")
        put("mongodb_uri", "MONGODB_URI", "DATABASE_URL")
        put("database_name", "DATABASE_NAME")
        put("jwt_secret", "JWT_SECRET")
        put("token_ttl_days", "TOKEN_TTL_DAYS", cast=int)
        put("bcrypt_rounds", "BCRYPT_ROUNDS", cast=int)
        put("otp_ttl_minutes", "OTP_TTL_MINUTES", cast=int)
        put("otp_max_resends", "OTP_MAX_RESENDS", cast=int)
        put("otp_resend_cooldown_seconds", "OTP_RESEND_COOLDOWN_SECONDS", cast=int)
        put("order_number_prefix", "ORDER_NUMBER_PREFIX")
        put("shipping_cost", "SHIPPING_COST", cast=float)
        put("smtp_host", "SMTP_HOST")
        put("smtp_port", "SMTP_PORT", cast=int)
        put("smtp_use_ssl", "SMTP_USE_SSL", cast=_truthy)
        put("smtp_user", "EMAIL_USER", "SMTP_USER")
        put("smtp_password", "EMAIL_PASS", "SMTP_PASSWORD")
        put("smtp_timeout", "SMTP_TIMEOUT", cast=float)
        put("mail_from", "MAIL_FROM", "EMAIL_USER")
        put("order_notification_email", "ORDER_NOTIFICATION_EMAIL")
        put("cors_origins", "CORS_ORIGINS", cast=_csv)
        put("catalog_path", "CATALOG_PATH", cast=Path)
        return cls(**values)


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if settings.jwt_secret == "devsecret" and not settings.is_development:
        logging.getLogger(__name__).warning(
            "JWT_SECRET is not set; tokens are signed with the development secret"
        )
