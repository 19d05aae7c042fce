from __future__ import annotations

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"
    log_format: str = "text"  # text | json

    host: str = "0.0.0.0"
    port: int = 3000

    # OCR provider: mock | tesseract
    ocr_provider: str = "tesseract"
    tesseract_cmd: str | None = None
    tesseract_lang: str = "eng"
    ocr_timeout_s: float = 10.0
    ocr_retry_attempts: int = 2
    ocr_max_workers: int = Field(default_factory=lambda: os.cpu_count() or 2)
    request_deadline_s: float = 30.0

    # Comma-separated, tried in this order
    rendering_profiles: str = "balanced,aggressive,light"

    # Selection policy
    min_length: int = 3
    expected_length: int = 4
    max_length: int = 6
    overflow_policy: str = "truncate"  # truncate | reject
    prefer_v_over_w: bool = True

    # Renderings are written here when set
    debug_dir: str | None = None

    max_payload_chars: int = 20 * 1024 * 1024

    @property
    def profile_names(self) -> list[str]:
        return [p.strip().lower() for p in self.rendering_profiles.split(",") if p.strip()]


settings = Settings()
