from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv


_PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_PROJECT_ROOT / ".env")


_DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8080",
    "https://wizthrift.app",
    "https://www.wizthrift.app",
    "https://wizthrift.vercel.app",
]


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _allowed_origins() -> List[str]:
    raw = (os.getenv("ALLOWED_ORIGINS") or "").strip()
    if raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return list(_DEFAULT_ORIGINS)


@dataclass(frozen=True)
class PostgresConfig:
    host: str = field(default_factory=lambda: os.getenv("PGHOST", "localhost"))
    port: int = field(default_factory=lambda: _env_int("PGPORT", 5432))
    database: str = field(default_factory=lambda: os.getenv("PGDATABASE", "thriftshop"))
    user: str = field(default_factory=lambda: os.getenv("PGUSER", "thriftshop"))
    password: str = field(default_factory=lambda: os.getenv("PGPASSWORD", "thriftshop"))

    def dsn(self) -> str:
        return (
            f"host={self.host} port={self.port} dbname={self.database} "
            f"user={self.user} password={self.password}"
        )


@dataclass(frozen=True)
class RazorpayConfig:
    key_id: str = field(default_factory=lambda: (os.getenv("RAZORPAY_KEY_ID") or "").strip())
    key_secret: str = field(default_factory=lambda: (os.getenv("RAZORPAY_KEY_SECRET") or "").strip())

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)


@dataclass(frozen=True)
class EmailConfig:
    resend_api_key: str = field(default_factory=lambda: (os.getenv("RESEND_API_KEY") or "").strip())
    from_email: str = field(
        default_factory=lambda: (os.getenv("RESEND_FROM_EMAIL") or "Orders <onboarding@resend.dev>").strip()
    )


@dataclass(frozen=True)
class AuthConfig:
    jwt_secret: str = field(default_factory=lambda: (os.getenv("JWT_SECRET") or "").strip())
    jwt_issuer: str = field(default_factory=lambda: (os.getenv("JWT_ISSUER") or "thriftshop").strip())
    jwt_audience: str = field(default_factory=lambda: (os.getenv("JWT_AUDIENCE") or "thriftshop").strip())
    # Sessions lapse after this many minutes; the client refreshes while active.
    jwt_ttl_minutes: int = field(default_factory=lambda: _env_int("JWT_TTL_MINUTES", 30))
    google_client_id: str = field(default_factory=lambda: (os.getenv("GOOGLE_CLIENT_ID") or "").strip())


@dataclass(frozen=True)
class AppConfig:
    environment: str = field(default_factory=lambda: (os.getenv("ENVIRONMENT") or "development").strip())
    allowed_origins: List[str] = field(default_factory=_allowed_origins)
    upload_dir: str = field(
        default_factory=lambda: os.getenv("UPLOAD_DIR") or str(_PROJECT_ROOT / "static" / "uploads")
    )
    log_level: str = field(default_factory=lambda: (os.getenv("LOG_LEVEL") or "INFO").upper())

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def get_config() -> AppConfig:
    return AppConfig()
