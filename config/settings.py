#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings

from .constants import (
    ADJUST_BATCH_SIZE,
    UPDATE_BATCH_SIZE,
    IMPROVE_BATCH_SIZE,
    ADAPT_BATCH_SIZE,
    TRANSLATE_BATCH_SIZE,
    CONTEXT_TOP_K,
    CONTEXT_TOP_K_PER_VERSION,
    INDEX_CACHE_MAX_VERSIONS,
    INDEX_CACHE_TTL_SECONDS,
    PAUSE_POLL_INTERVAL,
    SUBJOB_TIMEOUT_SECONDS,
    SUBJOB_POLL_INTERVAL,
)


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # ========== API Keys ==========
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    google_api_key: str = ""
    xai_api_key: str = ""

    # ========== Provider & Model ==========
    provider: str = "openai"  # openai | claude | gemini | grok
    model: Optional[str] = None  # None = provider default

    # ========== Generation ==========
    adjust_batch_size: int = ADJUST_BATCH_SIZE
    update_batch_size: int = UPDATE_BATCH_SIZE
    improve_batch_size: int = IMPROVE_BATCH_SIZE
    adapt_batch_size: int = ADAPT_BATCH_SIZE
    translate_batch_size: int = TRANSLATE_BATCH_SIZE

    # ========== Retrieval context ==========
    context_top_k: int = CONTEXT_TOP_K
    context_top_k_per_version: int = CONTEXT_TOP_K_PER_VERSION
    index_cache_size: int = INDEX_CACHE_MAX_VERSIONS
    index_cache_ttl: Optional[int] = INDEX_CACHE_TTL_SECONDS

    # ========== Jobs & pipelines ==========
    pause_poll_interval: float = PAUSE_POLL_INTERVAL
    subjob_timeout_seconds: int = SUBJOB_TIMEOUT_SECONDS
    subjob_poll_interval: float = SUBJOB_POLL_INTERVAL

    # ========== Directories ==========
    data_dir: Path = BASE_DIR / "data"
    storage_dir: Path = BASE_DIR / "data" / "storage"
    db_path: Path = BASE_DIR / "data" / "revisions.db"

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env that aren't defined in model

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        for dir_path in [self.data_dir, self.storage_dir, self.db_path.parent]:
            dir_path.mkdir(exist_ok=True, parents=True)

    def get_api_keys(self) -> dict:
        """API keys by provider name, only the ones that are set"""
        keys = {
            "openai": self.openai_api_key,
            "claude": self.anthropic_api_key,
            "gemini": self.google_api_key,
            "grok": self.xai_api_key,
        }
        return {name: key for name, key in keys.items() if key}

    def batch_size_for(self, operation: str) -> int:
        """Paragraph batch size for an operation kind value"""
        return {
            "adjust": self.adjust_batch_size,
            "update": self.update_batch_size,
            "improve": self.improve_batch_size,
            "adapt": self.adapt_batch_size,
            "translate": self.translate_batch_size,
        }[operation]


# Global settings instance
settings = Settings()
