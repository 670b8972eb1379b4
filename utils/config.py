"""
Configuration management.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults. Platform
    settings edited by admins are not here; they live in the store.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    allowed_origins: List[str] = field(
        default_factory=lambda: _split_csv(os.getenv("ALLOWED_ORIGINS", ""))
    )

    # Sessions
    session_secret: Optional[str] = field(default_factory=lambda: os.getenv("SESSION_SECRET"))

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))
    store_path: Optional[str] = field(default_factory=lambda: os.getenv("STORE_PATH"))

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    @property
    def resolved_store_path(self) -> str:
        """Store file, defaulting to store.json under data_dir."""
        return self.store_path or os.path.join(self.data_dir, "store.json")

    def to_dict(self) -> dict:
        """Convert config to dictionary (secrets omitted)."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "allowed_origins": list(self.allowed_origins),
            "data_dir": self.data_dir,
            "store_path": self.resolved_store_path,
        }
