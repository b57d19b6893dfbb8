"""
Configuration management.
"""

import os
from dataclasses import dataclass, field


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _env_int("PORT", "8000"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Field mapping
    mapping_threshold: float = field(default_factory=lambda: _env_float("MAPPING_THRESHOLD", "0.7"))
    review_threshold: float = field(default_factory=lambda: _env_float("REVIEW_THRESHOLD", "0.8"))
    address_match_threshold: float = field(
        default_factory=lambda: _env_float("ADDRESS_MATCH_THRESHOLD", "0.7")
    )

    # Upload limits
    max_file_size_bytes: int = field(
        default_factory=lambda: _env_int("MAX_FILE_SIZE_BYTES", str(10 * 1024 * 1024))
    )
    max_files_per_batch: int = field(default_factory=lambda: _env_int("MAX_FILES_PER_BATCH", "50"))
    max_records_per_file: int = field(
        default_factory=lambda: _env_int("MAX_RECORDS_PER_FILE", "1000")
    )
    parse_workers: int = field(default_factory=lambda: _env_int("PARSE_WORKERS", "4"))

    # Photos
    max_photos: int = field(default_factory=lambda: _env_int("MAX_PHOTOS", "50"))
    min_photos: int = field(default_factory=lambda: _env_int("MIN_PHOTOS", "4"))

    # Listing store
    persistence_api_url: str = field(default_factory=lambda: os.getenv("PERSISTENCE_API_URL", ""))
    persistence_api_key: str = field(default_factory=lambda: os.getenv("PERSISTENCE_API_KEY", ""))
    request_timeout: int = field(default_factory=lambda: _env_int("REQUEST_TIMEOUT", "30"))

    def __post_init__(self) -> None:
        for name in ("mapping_threshold", "review_threshold", "address_match_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1]: {value}")
        for name in ("max_file_size_bytes", "max_files_per_batch", "max_records_per_file",
                     "parse_workers", "max_photos"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.min_photos < 0:
            raise ValueError("min_photos cannot be negative")

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def to_dict(self) -> dict:
        """Convert config to dictionary. The store API key is never included."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "mapping_threshold": self.mapping_threshold,
            "review_threshold": self.review_threshold,
            "address_match_threshold": self.address_match_threshold,
            "max_file_size_bytes": self.max_file_size_bytes,
            "max_files_per_batch": self.max_files_per_batch,
            "max_records_per_file": self.max_records_per_file,
            "parse_workers": self.parse_workers,
            "max_photos": self.max_photos,
            "min_photos": self.min_photos,
            "persistence_api_url": self.persistence_api_url,
            "request_timeout": self.request_timeout,
        }
