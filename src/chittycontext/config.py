"""
ChittyContext Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables prefixed with ``CHITTY_``.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from chittycontext.chittyid import SYSTEM_CHITTY_ID

if TYPE_CHECKING:
    from chittycontext.api.middleware import ContextMiddlewareOptions


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for ChittyContext logs.

    Follows XDG Base Directory Specification:
    - Uses $XDG_STATE_HOME/chittycontext/logs if XDG_STATE_HOME is set
    - Falls back to $HOME/.local/state/chittycontext/logs if not set
    - Returns relative path ./logs if HOME not available (dev/testing)

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "chittycontext" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "chittycontext" / "logs")

    return "./logs"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CHITTY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = "development"

    # Storage
    store_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./chittycontext.db"
    notifications_enabled: bool = False  # Enqueue context.save / audit.event messages

    # Boundary middleware
    public_paths: list[str] = ["/health", "/api/v1/status", "/.well-known"]
    allow_anonymous: bool = False
    system_chitty_id: str = SYSTEM_CHITTY_ID
    enable_audit_log: bool = True
    default_context_type: str = "session"

    # Per-principal rate limiting on mutating context routes
    rate_limit_max_requests: int = 60
    rate_limit_window_seconds: int = 60

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # XDG-compliant log directory (defaults to XDG state dir if empty)
    log_format: Literal["standard", "json"] = "standard"
    log_console_enabled: bool = True
    log_file_enabled: bool = False
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())

    def middleware_options(self) -> "ContextMiddlewareOptions":
        """Build the explicit options object consumed by the boundary middleware."""
        from chittycontext.api.middleware import ContextMiddlewareOptions
        from chittycontext.models.context import ContextType

        return ContextMiddlewareOptions(
            public_paths=tuple(self.public_paths),
            allow_anonymous=self.allow_anonymous,
            system_chitty_id=self.system_chitty_id,
            enable_audit_log=self.enable_audit_log,
            context_type=ContextType(self.default_context_type),
        )


# Global settings instance
settings = Settings()
