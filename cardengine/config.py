# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Application Configuration
All settings are loaded from environment variables with print-card
defaults (3000×4200 canvas, 700 KB upload budget). Override via .env
or environment.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ─── Event Backend ───────────────────────────────────────────────────────
    backend_api_url: str = "http://localhost:8000/api"
    # QR relative paths resolve to {backend_storage_url}/storage/{path}
    backend_storage_url: str = "http://localhost:8000"
    backend_api_token: Optional[str] = None
    http_timeout_seconds: float = 30.0
    # Optional webhook notified once a batch run finishes
    refresh_webhook_url: Optional[str] = None

    # ─── Card Canvas ─────────────────────────────────────────────────────────
    # Nominal print size; placement always uses the template's real pixels
    card_canvas_width: int = 3000
    card_canvas_height: int = 4200
    qr_size_px: int = 600
    font_path: Optional[str] = None

    # ─── Compression ─────────────────────────────────────────────────────────
    card_max_bytes: int = 700 * 1024
    compression_start_quality: float = 0.95
    compression_quality_step: float = 0.05
    # Single floor for bulk and single-card paths
    compression_quality_floor: float = 0.30
    compression_resize_quality: float = 0.90
    resize_max_passes: int = 3

    # ─── Batch Orchestration ─────────────────────────────────────────────────
    # Rate limit towards the persistence backend
    inter_item_delay_seconds: float = 1.0

    # ─── Job Store ───────────────────────────────────────────────────────────
    job_store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    job_ttl_seconds: int = 86400  # 24 hours

    # ─── Logging ─────────────────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # ─── Server ──────────────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8080

    # ─── Derived helpers ─────────────────────────────────────────────────────
    @property
    def card_max_kb(self) -> float:
        return self.card_max_bytes / 1024

    @property
    def qr_base_url(self) -> str:
        return f"{self.backend_storage_url.rstrip('/')}/storage"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached singleton Settings instance."""
    return Settings()
