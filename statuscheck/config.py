from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_prefix": "STATUSCHECK_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Checks file (YAML or JSON with a top-level `checkers` list)
    checks_file: str = "checks.yaml"

    # Different endpoints are checked in parallel; attempts never are
    max_workers: int = 4

    # Default transport policy (seconds)
    connect_timeout: float = 10.0
    tls_handshake_timeout: float = 5.0
    response_header_timeout: float = 5.0
    write_timeout: float = 10.0
    dial_timeout: float = 5.0
    max_idle_per_host: int = 1

    # Logging
    log_level: str = "INFO"


settings = Settings()
