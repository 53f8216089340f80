"""Configuration management for tometracker.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEFAULT_HOME = Path.home() / ".tometracker"


@dataclass
class Config:
    """Application configuration."""

    # Storage
    db_path: Path
    mirror_path: Path

    # Identity of the catalog owner for CLI use
    user_id: str

    # Metadata providers
    http_timeout: int  # seconds
    google_books_api_key: Optional[str]

    # Duplicate detection
    duplicate_threshold: float

    # Rate limiting: "memory" or "database"
    rate_limit_store: str

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path = Path(
            os.environ.get("TOMETRACKER_DB_PATH", str(DEFAULT_HOME / "catalog.db"))
        ).expanduser()
        mirror_path = Path(
            os.environ.get("TOMETRACKER_MIRROR_PATH", str(DEFAULT_HOME / "offline.db"))
        ).expanduser()

        return cls(
            db_path=db_path,
            mirror_path=mirror_path,
            user_id=os.environ.get("TOMETRACKER_USER_ID", "local"),
            http_timeout=int(os.environ.get("TOMETRACKER_HTTP_TIMEOUT", "10")),
            google_books_api_key=os.environ.get("GOOGLE_BOOKS_API_KEY"),
            duplicate_threshold=float(
                os.environ.get("TOMETRACKER_DUPLICATE_THRESHOLD", "0.82")
            ),
            rate_limit_store=os.environ.get("TOMETRACKER_RATE_LIMIT_STORE", "memory").lower(),
            log_level=os.environ.get("TOMETRACKER_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        for path in (self.db_path, self.mirror_path):
            if str(path) == ":memory:" or path.parent.exists():
                continue
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create directory: {path.parent}")

        if not 0 < self.duplicate_threshold <= 1:
            errors.append(
                f"Duplicate threshold must be in (0, 1], got {self.duplicate_threshold}"
            )

        if self.rate_limit_store not in ("memory", "database"):
            errors.append(f"Unknown rate limit store: {self.rate_limit_store}")

        if not self.user_id.strip():
            errors.append("User id must not be empty")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
