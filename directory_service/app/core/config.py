"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for all fields so the
directory starts with a local SQLite file and no further setup.  In a
production deployment you should override these via environment
variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Service Directory")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: Optional[str] = os.getenv("LOG_FILE") or None

    # Path to the SQLite database file.  A relative path is resolved
    # against the current working directory by ``db.resolve_database_path``.
    database_url: str = os.getenv("DATABASE_URL", "directory.db")

    # Seconds a connection waits on the SQLite write lock before giving up.
    database_busy_timeout: float = float(os.getenv("DATABASE_BUSY_TIMEOUT", "5"))

    # Deadline (seconds) applied by the HTTP layer to every store operation.
    # ``0`` disables the deadline.
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "10"))

    # Health probes: per‑probe timeout and the path appended to
    # ``http://host:port`` when an instance has no explicit URL.
    health_check_timeout: float = float(os.getenv("HEALTH_CHECK_TIMEOUT", "5"))
    health_check_path: str = os.getenv("HEALTH_CHECK_PATH", "/health")

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))

    @property
    def operation_timeout(self) -> Optional[float]:
        """``request_timeout`` as passed to the stores (``None`` when disabled)."""
        return self.request_timeout if self.request_timeout > 0 else None


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables should
# be set before importing this module.
settings = Settings()
