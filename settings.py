# =============================================================================
# ⚙️ settings.py
# -----------------------------------------------------------------------------
# Zentrale Konfiguration für den DAO-Bitat Property-QR-Service.
# Liest .env + Umgebungsvariablen und liefert ein unveränderliches Settings-Objekt.
# =============================================================================

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

ERROR_CORRECTION_LEVELS = {"low", "medium", "quartile", "high"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_url(name: str, default: str) -> str:
    return (os.getenv(name) or default).rstrip("/")


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    database_url: str = f"sqlite:///{BASE_DIR / 'property_qr.db'}"

    # 🌐 Basis-URLs
    base_url: str = "https://qr-service.daobitat.xyz"
    daobitat_base_url: str = "https://www.daobitat.xyz"
    blockchain_explorer_base_url: str = "https://basescan.org"

    # 🗂️ Objektspeicher (S3-kompatible Keys, lokal abgelegt)
    storage_dir: str = str(BASE_DIR / "media")
    public_media_url: Optional[str] = None

    # 🎨 QR-Darstellung
    qr_default_size: int = 256
    qr_error_correction: str = "medium"
    qr_foreground_color: str = "#000000"
    qr_background_color: str = "#FFFFFF"
    qr_logo_path: Optional[str] = None
    qr_expiry_days: int = 365

    # 📊 Analytics
    analytics_workers: int = 4
    analytics_retention_days: int = 365

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Lädt .env (falls vorhanden) und baut die Settings aus os.environ."""
        load_dotenv(dotenv_path=env_file or BASE_DIR / ".env")
        defaults = cls()
        settings = cls(
            environment=os.getenv("ENVIRONMENT", defaults.environment),
            host=os.getenv("HOST", defaults.host),
            port=_env_int("PORT", defaults.port),
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            base_url=_env_url("BASE_URL", defaults.base_url),
            daobitat_base_url=_env_url("DAOBITAT_BASE_URL", defaults.daobitat_base_url),
            blockchain_explorer_base_url=_env_url(
                "BLOCKCHAIN_EXPLORER_BASE_URL", defaults.blockchain_explorer_base_url
            ),
            storage_dir=os.getenv("STORAGE_DIR", defaults.storage_dir),
            public_media_url=(os.getenv("PUBLIC_MEDIA_URL") or "").rstrip("/") or None,
            qr_default_size=_env_int("QR_DEFAULT_SIZE", defaults.qr_default_size),
            qr_error_correction=os.getenv("QR_ERROR_CORRECTION", defaults.qr_error_correction).lower(),
            qr_foreground_color=os.getenv("QR_FOREGROUND_COLOR", defaults.qr_foreground_color),
            qr_background_color=os.getenv("QR_BACKGROUND_COLOR", defaults.qr_background_color),
            qr_logo_path=os.getenv("QR_LOGO_PATH") or None,
            qr_expiry_days=_env_int("QR_EXPIRY_DAYS", defaults.qr_expiry_days),
            analytics_workers=_env_int("ANALYTICS_WORKERS", defaults.analytics_workers),
            analytics_retention_days=_env_int(
                "ANALYTICS_RETENTION_DAYS", defaults.analytics_retention_days
            ),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError("BASE_URL must be an absolute http(s) URL")
        if self.qr_error_correction not in ERROR_CORRECTION_LEVELS:
            raise ValueError(
                f"QR_ERROR_CORRECTION must be one of {sorted(ERROR_CORRECTION_LEVELS)}"
            )
        if self.qr_default_size <= 0:
            raise ValueError("QR_DEFAULT_SIZE must be positive")
        if self.qr_expiry_days <= 0:
            raise ValueError("QR_EXPIRY_DAYS must be positive")
        if self.analytics_workers < 0:
            raise ValueError("ANALYTICS_WORKERS must be >= 0")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
