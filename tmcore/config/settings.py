#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration for the translation memory engine
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Engine settings"""

    # ========== Database ==========
    database_backend: str = "sqlite"  # sqlite only for now
    database_dir: Path = BASE_DIR / "data"
    database_name: str = "tmcore"
    database_echo: bool = False

    # Connection pool (bounded; exhaustion is a transient error)
    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: float = 5.0  # seconds to wait for a free connection
    sqlite_busy_timeout: float = 5.0

    # Retry / timeouts
    max_retries: int = 3
    retry_base_delay: float = 0.05  # seconds, doubled per attempt
    operation_timeout: float = 30.0  # default caller timeout for storage calls

    # ========== Columnar Archive ==========
    archive_enabled: bool = True
    archive_dir: Path = BASE_DIR / "data" / "archive"
    archive_compression: str = "snappy"  # snappy | gzip | zstd | none

    # ========== Match Engine ==========
    similarity_floor: float = 0.3
    max_search_results: int = 20
    max_candidates: int = 5000  # rows scanned per fuzzy/n-gram pass
    short_text_length: int = 32  # chars; Levenshtein also used at or below this
    ngram_size: int = 3
    ngram_min_word_length: int = 4

    # Suggestion mode
    suggestion_delay_ms: int = 500
    suggestion_confidence_threshold: float = 0.7
    max_suggestions: int = 5
    auto_create_units: bool = True

    # Confidence indicator bands
    indicator_high_threshold: float = 0.8
    indicator_medium_threshold: float = 0.5

    # ========== Terminology ==========
    terms_case_sensitive: bool = False  # uniqueness of term text per project
    highlight_case_sensitive: bool = True
    max_term_length: int = 100  # longer terms are imported with a warning
    term_suggestion_min: float = 0.7  # open band (min, max)
    term_suggestion_max: float = 1.0
    highlight_window_padding: int = 50

    # ========== Alignment ==========
    position_alignment_tolerance: float = 0.2  # |src/tgt - 1| below this pairs by position
    alignment_skip_penalty: float = 0.5
    alignment_position_weight: float = 0.4
    alignment_length_weight: float = 0.3
    alignment_structure_weight: float = 0.3
    max_length_ratio_deviation: float = 2.5
    auto_validation_threshold: float = 0.9
    learned_method_threshold: float = 0.7
    learning_rate: float = 0.01
    correction_history_limit: int = 1000
    correction_prior_weight: float = 0.15  # per logged correction
    correction_prior_max_weight: float = 0.6
    problem_severity_floor: float = 0.5
    health_decay_weight: float = 0.5

    # ========== Logging ==========
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        env_prefix = "TMCORE_"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env that aren't defined in model

    @property
    def database_path(self) -> Path:
        return self.database_dir / f"{self.database_name}.db"

    def ensure_directories(self):
        """Create data directories on first use."""
        for dir_path in [self.database_dir, self.archive_dir]:
            dir_path.mkdir(exist_ok=True, parents=True)


# Global settings instance
settings = Settings()
