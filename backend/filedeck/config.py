"""filedeck configuration: Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    app_name: str = "filedeck"
    debug: bool = True
    environment: str = "development"
    log_level: str = "INFO"

    # Network
    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api"
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:8000",
    ]

    # Storage paths (relative resolved from backend/ at runtime)
    root_dir: str = "./data/storage"  # Files served to clients
    data_dir: str = "./data"
    log_dir: str = "./data/logs"
    database_path: str = "./data/filedeck.db"  # Metadata cache key-value store

    # Metadata cache
    cache_ttl_seconds: float = 60.0
    cache_stale_grace_seconds: float = 300.0  # Stale listings kept for deadline fallback
    max_path_depth: int = 32
    search_max_results: int = 1000
    refresh_interval_seconds: int = 0  # 0 = scheduled refresh disabled

    # Transfers
    upload_chunk_size: int = 256 * 1024

    # Event log
    event_log_level: str = "info"  # error | warn | info | debug
    enable_detailed_logging: bool = True
    log_request: bool = True
    log_file: bool = True
    log_security: bool = True
    log_performance: bool = True
    log_system: bool = True
    log_auth: bool = True

    # Feature toggles (only request_logging is consumed by the core)
    rate_limit: bool = True
    security_headers: bool = True
    input_validation: bool = True
    upload_security: bool = True
    request_logging: bool = True
    csp: bool = False

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="FILEDECK_",
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: list[str] | str) -> list[str]:
        if isinstance(value, str) and not value.startswith("["):
            return [o.strip() for o in value.split(",") if o.strip()]
        if isinstance(value, list):
            return value
        return ["http://localhost:5173"]

    @field_validator("event_log_level")
    @classmethod
    def check_event_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in ("error", "warn", "info", "debug"):
            raise ValueError(f"unknown event log level: {value}")
        return value

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Ensure storage and data directories are absolute."""
        base = Path(__file__).resolve().parent.parent  # backend/
        for field in ("root_dir", "data_dir", "log_dir", "database_path"):
            val = getattr(self, field)
            if not Path(val).is_absolute():
                setattr(self, field, str((base / val).resolve()))
        return self

    @property
    def category_toggles(self) -> dict[str, bool]:
        return {
            "request": self.log_request,
            "file": self.log_file,
            "security": self.log_security,
            "performance": self.log_performance,
            "system": self.log_system,
            "auth": self.log_auth,
        }

    @property
    def feature_toggles(self) -> dict[str, bool]:
        return {
            "rate_limit": self.rate_limit,
            "security_headers": self.security_headers,
            "input_validation": self.input_validation,
            "upload_security": self.upload_security,
            "request_logging": self.request_logging,
            "csp": self.csp,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
