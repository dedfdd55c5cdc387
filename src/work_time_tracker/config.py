from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    database_path: Path
    api_host: str
    api_port: int
    api_base_url: str
    admin_token: str | None
    local_cache_path: Path
    tick_seconds: float
    sync_interval_seconds: float
    log_level: str


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_seconds(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_settings(env_file: Path = Path(".env")) -> Settings:
    _load_env_file(env_file)

    api_host = os.getenv("API_HOST", "127.0.0.1")
    api_port = _parse_int(os.getenv("API_PORT"), 8000)

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/app.db")),
        api_host=api_host,
        api_port=api_port,
        api_base_url=os.getenv("API_BASE_URL", f"http://{api_host}:{api_port}"),
        admin_token=os.getenv("ADMIN_TOKEN") or None,
        local_cache_path=Path(os.getenv("LOCAL_CACHE_PATH", "./data/timer_cache.json")),
        tick_seconds=_parse_seconds(os.getenv("TICK_SECONDS"), 1.0),
        sync_interval_seconds=_parse_seconds(os.getenv("SYNC_INTERVAL_SECONDS"), 300.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
