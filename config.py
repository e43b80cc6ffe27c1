"""Application settings.

Values come from environment variables; a `.env` file in the project root is
loaded first so local development does not need exported variables.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

PROJECT_ROOT = Path(__file__).parent

load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "https://rekraft.in",
    "https://www.rekraft.in",
    "https://rekraft-frontend.vercel.app",
]


class Settings(BaseModel):
    """Top-level application settings."""

    # Database
    database_url: Optional[str] = None
    database_name: str = "rekraft"
    db_timeout_ms: int = 12000

    # Auth
    jwt_secret: str = "rekraft-development-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 30
    otp_ttl_seconds: int = 600

    # Payment gateway
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_base_url: str = "https://api.razorpay.com/v1"
    gateway_timeout_seconds: float = 15.0

    # Mail
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    admin_email: Optional[str] = None

    # Runtime
    cors_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    app_env: str = "development"
    log_level: str = "INFO"
    port: int = 8000

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment, keeping defaults for unset keys."""
        env_map = {
            "database_url": "DATABASE_URL",
            "database_name": "DATABASE_NAME",
            "db_timeout_ms": "DB_TIMEOUT_MS",
            "jwt_secret": "JWT_SECRET",
            "jwt_expire_days": "JWT_EXPIRE_DAYS",
            "otp_ttl_seconds": "OTP_TTL_SECONDS",
            "razorpay_key_id": "RAZORPAY_KEY_ID",
            "razorpay_key_secret": "RAZORPAY_KEY_SECRET",
            "razorpay_base_url": "RAZORPAY_BASE_URL",
            "gateway_timeout_seconds": "GATEWAY_TIMEOUT_SECONDS",
            "smtp_host": "SMTP_HOST",
            "smtp_port": "SMTP_PORT",
            "email_user": "EMAIL_USER",
            "email_pass": "EMAIL_PASS",
            "admin_email": "ADMIN_EMAIL",
            "app_env": "APP_ENV",
            "log_level": "LOG_LEVEL",
            "port": "PORT",
        }
        data = {}
        for field, var in env_map.items():
            value = os.getenv(var)
            if value:
                data[field] = value
        origins = os.getenv("CORS_ORIGINS")
        if origins:
            data["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        return cls(**data)


# Singleton settings instance
settings = Settings.from_env()
