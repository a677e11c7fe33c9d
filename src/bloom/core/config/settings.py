"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Bloom score server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; there is no auth layer in front of the tools.
    bloom_host: str = "127.0.0.1"
    bloom_port: int = 8003
    bloom_log_level: str = "info"
    bloom_allow_insecure_bind: bool = False

    # Storage (score history)
    db_path: str = "~/.bloom/scores.db"

    # Encryption: comma-separated Fernet keys, primary first. Empty disables
    # persistence.
    encryption_key: str = ""

    # Remote iterative scoring service (MCP). Empty runs iterative locally.
    scoring_service_url: str = ""
    scoring_service_timeout_s: float = 10.0

    # Scoring defaults
    default_scoring_method: Literal["weighted", "iterative"] = "weighted"
    max_iterations: int = 50
    convergence_threshold: float = 0.001


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
