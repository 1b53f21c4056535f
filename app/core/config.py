from __future__ import annotations

import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///casework.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Write conflicts are retried this many times before surfacing StaleState.
    COMMIT_MAX_ATTEMPTS = int(os.getenv("COMMIT_MAX_ATTEMPTS", "3"))
    ENFORCE_BUDGET_CEILING = _env_flag("ENFORCE_BUDGET_CEILING", True)
    DOCUMENT_STORAGE_DIR = os.getenv("DOCUMENT_STORAGE_DIR", "")
    SNAPSHOT_CACHE_SIZE = int(os.getenv("SNAPSHOT_CACHE_SIZE", "512"))

    DEFAULT_TAX_RATE = "18"
    DRAWING_DEADLINE_HOURS = 4
