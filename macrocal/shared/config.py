"""Configuration management for macrocal."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the runtime configuration.

    Built once at startup via ``Config.settings()`` and handed to collectors,
    the reconciliation engine and the HTTP app by reference.
    """

    database_url: str
    fred_api_key: Optional[str]
    bls_api_key: Optional[str]
    admin_upload_secret: Optional[str]
    request_timeout: int
    source_request_delay: float
    max_retries: int
    retry_base_delay: float
    reconcile_chunk_size: int
    reconcile_max_workers: int
    log_level: str
    logs_dir: Path
    data_dir: Path


class Config:
    """Application configuration."""

    # Project paths
    ROOT_DIR = Path(__file__).parent.parent.parent
    DATA_DIR = ROOT_DIR / "data"
    LOGS_DIR = ROOT_DIR / "logs"

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'macrocal.db'}")

    # API Keys
    FRED_API_KEY: Optional[str] = os.getenv("FRED_API_KEY")
    BLS_API_KEY: Optional[str] = os.getenv("BLS_API_KEY")
    ADMIN_UPLOAD_SECRET: Optional[str] = os.getenv("ADMIN_UPLOAD_SECRET")

    # Source requests
    REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "30"))
    SOURCE_REQUEST_DELAY: float = float(os.getenv("SOURCE_REQUEST_DELAY", "0.3"))
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
    RETRY_BASE_DELAY: float = float(os.getenv("RETRY_BASE_DELAY", "1.0"))

    # Reconciliation
    RECONCILE_CHUNK_SIZE: int = int(os.getenv("RECONCILE_CHUNK_SIZE", "50"))
    RECONCILE_MAX_WORKERS: int = int(os.getenv("RECONCILE_MAX_WORKERS", "8"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if cls.RECONCILE_CHUNK_SIZE < 1:
            raise ValueError("RECONCILE_CHUNK_SIZE must be at least 1")
        if cls.RECONCILE_MAX_WORKERS < 1:
            raise ValueError("RECONCILE_MAX_WORKERS must be at least 1")
        if cls.MAX_RETRIES < 0:
            raise ValueError("MAX_RETRIES cannot be negative")

    @classmethod
    def settings(cls) -> Settings:
        """Snapshot the current class attributes into a frozen ``Settings``."""
        cls.validate()
        return Settings(
            database_url=cls.DATABASE_URL,
            fred_api_key=cls.FRED_API_KEY,
            bls_api_key=cls.BLS_API_KEY,
            admin_upload_secret=cls.ADMIN_UPLOAD_SECRET,
            request_timeout=cls.REQUEST_TIMEOUT,
            source_request_delay=cls.SOURCE_REQUEST_DELAY,
            max_retries=cls.MAX_RETRIES,
            retry_base_delay=cls.RETRY_BASE_DELAY,
            reconcile_chunk_size=cls.RECONCILE_CHUNK_SIZE,
            reconcile_max_workers=cls.RECONCILE_MAX_WORKERS,
            log_level=cls.LOG_LEVEL,
            logs_dir=cls.LOGS_DIR,
            data_dir=cls.DATA_DIR,
        )
