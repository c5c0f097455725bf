"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """BioAge Health server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; a health MCP server has no auth layer.
    bioage_host: str = "127.0.0.1"
    bioage_port: int = 8001
    bioage_log_level: str = "info"
    # Non-loopback binds are refused unless this is set.
    bioage_allow_insecure_bind: bool = False

    # Profile preference store
    db_path: str = "~/.bioage/profile.db"
    # Empty means preferences live in memory only.
    encryption_key: str = ""

    # Reference tables (empty = packaged YAML)
    reference_dir: str = ""

    # Import
    decompress_chunk_size: int = 64 * 1024
    decompress_max_pending_chunks: int = 4
    record_lookback_bytes: int = 32 * 1024

    # Scoring / estimation
    score_anchors: list[float] = [15, 45, 72, 100]
    bio_age_clamp_years: float = 20.0
    bio_age_s_ba: float = 7.0

    # Profile defaults
    default_age: int = 40
    default_sex: Literal["female", "male"] = "female"
    default_ethnicity: str = "general"

    @field_validator("score_anchors")
    @classmethod
    def _anchors_ascending(cls, value: list[float]) -> list[float]:
        if len(value) < 2 or any(b < a for a, b in zip(value, value[1:])):
            raise ValueError("score_anchors must hold at least two ascending values")
        return value

    @field_validator("decompress_chunk_size", "decompress_max_pending_chunks", "record_lookback_bytes")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
