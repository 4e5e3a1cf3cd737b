from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Layout
    root_dir: str = os.getenv("LCR_ROOT_DIR", "cluster")
    project_dir: str = os.getenv("LCR_PROJECT_DIR", "..")
    clean: bool = _env_bool("LCR_CLEAN", True)

    # Event journal
    db_path: str = os.getenv("LCR_DB_PATH", os.path.join(".lcr", "events.db"))

    # Health check
    database_dsn: str = os.getenv(
        "LCR_DATABASE_DSN", "host=localhost port=26257 user=root dbname=master sslmode=disable"
    )
    health_interval_s: int = _env_int("LCR_HEALTH_INTERVAL_S", 1)

    # Identities
    # Directory holding ca.cert, ca.key, identity.cert, identity.key for satellite-api/0.
    root_identity_dir: str | None = os.getenv("LCR_ROOT_IDENTITY_DIR")

    # Satellite console calls (accessGrant)
    http_timeout_s: int = _env_int("LCR_HTTP_TIMEOUT_S", 10)

    # Container backend
    docker_network: str = os.getenv("LCR_DOCKER_NETWORK", "lcr")


settings = Settings()
