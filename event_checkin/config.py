from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_SQLITE_PATH = BASE_DIR / "event_checkin.db"
DEFAULT_SQLITE_URL = f"sqlite:///{DEFAULT_SQLITE_PATH}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BASE_DIR / ".env", env_prefix="CHECKIN_", case_sensitive=False)

    # Bearer tokens issued by the identity provider; each maps to a role
    api_token: str = Field(default="dev-token", description="Bearer token for the admin role")
    scanner_token: str = Field(default="dev-scanner-token", description="Bearer token for door staff (user role)")
    database_url: str = Field(default=DEFAULT_SQLITE_URL, description="SQLAlchemy database URL")
    sqlite_busy_timeout: float = Field(default=15.0, description="Seconds a SQLite writer waits for the lock")
    # Comma-separated values or '*' for all
    cors_origins: str = Field(default="*")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Rate limiting (per token+IP per minute)
    rate_limit_enabled: bool = Field(default=False)
    rate_limit_per_minute: int = Field(default=600)

    # Credential rendering and delivery
    qr_box_size: int = Field(default=10, description="Pixels per QR module")
    qr_border: int = Field(default=4, description="Quiet zone width in modules")
    mail_from: str = Field(default="no-reply@example.com")
    mail_subject_prefix: str = Field(default="Registration Confirmation")

    @property
    def cors_origins_list(self) -> List[str]:
        s = (self.cors_origins or "").strip()
        if not s or s == "*":
            return ["*"]
        return [part.strip() for part in s.split(",") if part.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
