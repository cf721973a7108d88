from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return list(default or [])
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass
class Config:
    ENV: str = field(default_factory=lambda: _env_str("APP_ENV", "development").lower())
    APP_VERSION: str = field(default_factory=lambda: _env_str("APP_VERSION", "0.1.0"))
    LOG_LEVEL: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO").upper())

    CORS_ORIGINS: list[str] = field(default_factory=lambda: _env_list("CORS_ORIGINS", ["http://localhost:3000"]))
    CORS_ALLOW_CREDENTIALS: bool = field(default_factory=lambda: _env_bool("CORS_ALLOW_CREDENTIALS", True))

    MONGODB_URI: str = field(default_factory=lambda: _env_str("MONGODB_URI", "mongodb://localhost:27017/"))
    MONGO_DB_NAME: str = field(default_factory=lambda: _env_str("MONGO_DB_NAME", "training_platform"))
    MONGO_TIMEOUT_MS: int = field(default_factory=lambda: _env_int("MONGO_TIMEOUT_MS", 5000))

    # 7 days, same lifetime as the login cookie.
    SESSION_TTL_MINUTES: int = field(default_factory=lambda: _env_int("SESSION_TTL_MINUTES", 60 * 24 * 7))

    CONTENTSTACK_API_KEY: str = field(default_factory=lambda: _env_str("CONTENTSTACK_API_KEY"))
    CONTENTSTACK_DELIVERY_TOKEN: str = field(default_factory=lambda: _env_str("CONTENTSTACK_DELIVERY_TOKEN"))
    CONTENTSTACK_ENVIRONMENT: str = field(default_factory=lambda: _env_str("CONTENTSTACK_ENVIRONMENT", "production"))
    CONTENTSTACK_REGION: str = field(default_factory=lambda: _env_str("CONTENTSTACK_REGION", "us").lower())
    CMS_TIMEOUT_SECONDS: int = field(default_factory=lambda: _env_int("CMS_TIMEOUT_SECONDS", 15))

    TAXONOMY_UID: str = field(default_factory=lambda: _env_str("TAXONOMY_UID", "course_module"))
    TAXONOMY_FALLBACK_DIR: str = field(default_factory=lambda: _env_str("TAXONOMY_FALLBACK_DIR", "contenttype"))

    EMAIL_HOST: str = field(default_factory=lambda: _env_str("EMAIL_HOST", "smtp.gmail.com"))
    EMAIL_PORT: int = field(default_factory=lambda: _env_int("EMAIL_PORT", 587))
    EMAIL_USER: str = field(default_factory=lambda: _env_str("EMAIL_USER"))
    EMAIL_PASS: str = field(default_factory=lambda: _env_str("EMAIL_PASS"))
    EMAIL_FROM: str = field(default_factory=lambda: _env_str("EMAIL_FROM"))

    RATE_LIMIT_LOGIN: int = field(default_factory=lambda: _env_int("RATE_LIMIT_LOGIN", 10))

    SUPERADMIN_EMAIL: str = field(default_factory=lambda: _env_str("SUPERADMIN_EMAIL", "superadmin@techacademy.com"))
    SUPERADMIN_PASSWORD: str = field(default_factory=lambda: _env_str("SUPERADMIN_PASSWORD"))

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.ENV in {"prod", "production"}

    @property
    def CMS_CONFIGURED(self) -> bool:
        return bool(self.CONTENTSTACK_API_KEY and self.CONTENTSTACK_DELIVERY_TOKEN)

    @property
    def EMAIL_CONFIGURED(self) -> bool:
        return bool(self.EMAIL_USER and self.EMAIL_PASS)

    def validate(self) -> None:
        if self.SESSION_TTL_MINUTES <= 0:
            raise ValueError("SESSION_TTL_MINUTES must be positive")
        if not self.MONGO_DB_NAME:
            raise ValueError("MONGO_DB_NAME is required")
        if self.IS_PRODUCTION and not self.CMS_CONFIGURED:
            raise ValueError("CONTENTSTACK_API_KEY and CONTENTSTACK_DELIVERY_TOKEN are required in production")


def get_config() -> Config:
    cfg = Config()
    cfg.validate()
    return cfg
