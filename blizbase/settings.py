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


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Battle.net
    client_id: str | None = os.getenv("CLIENT_ID")
    client_secret: str | None = os.getenv("CLIENT_SECRET")
    realm_slug: str = os.getenv("REALM_SLUG", "")
    guild_slug: str = os.getenv("GUILD_SLUG", "")
    region: str = os.getenv("BLIZBASE_REGION", "eu")
    locale: str = os.getenv("BLIZBASE_LOCALE", "de_DE")

    # HTTP surface
    host: str = os.getenv("BLIZBASE_HOST", "0.0.0.0")
    port: int = _env_int("BLIZBASE_PORT", 8090)

    # Storage
    db_path: str = os.getenv("BLIZBASE_DB_PATH", "blizbase.db")

    # Schedule
    roster_interval_s: int = _env_int("BLIZBASE_ROSTER_INTERVAL_S", 7 * 60)
    update_interval_s: int = _env_int("BLIZBASE_UPDATE_INTERVAL_S", 20 * 60)

    # Self-update
    self_update: bool = _env_bool("BLIZBASE_SELF_UPDATE", True)
    image: str = os.getenv("BLIZBASE_IMAGE", "ghcr.io/jrsmile/blizbase:latest")
    docker_socket: str = os.getenv("BLIZBASE_DOCKER_SOCKET", "unix:///var/run/docker.sock")
    update_deadline_s: float = _env_float("BLIZBASE_UPDATE_DEADLINE_S", 300.0)
    restart_grace_s: int = _env_int("BLIZBASE_RESTART_GRACE_S", 10)

    # Outbound traffic
    http_timeout_s: float = _env_float("BLIZBASE_HTTP_TIMEOUT_S", 30.0)
    docker_timeout_s: float = _env_float("BLIZBASE_DOCKER_TIMEOUT_S", 120.0)
    # 10 requests per second with a burst of 100 keeps us well under 36000/hour.
    rate_permits: int = _env_int("BLIZBASE_RATE_PERMITS", 10)
    rate_period_s: float = _env_float("BLIZBASE_RATE_PERIOD_S", 1.0)
    rate_burst: int = _env_int("BLIZBASE_RATE_BURST", 100)
    fetch_workers: int = _env_int("BLIZBASE_FETCH_WORKERS", 4)
    retry_attempts: int = _env_int("BLIZBASE_RETRY_ATTEMPTS", 3)
    retry_backoff_s: float = _env_float("BLIZBASE_RETRY_BACKOFF_S", 0.1)

    # Logging
    log_level: str = os.getenv("BLIZBASE_LOG_LEVEL", "INFO")
    log_json: bool = _env_bool("BLIZBASE_LOG_JSON", True)


settings = Settings()
