from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_PATH = "timeclock.db"
DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 8080


@dataclass(frozen=True, slots=True)
class BotConfig:
    discord_token: str
    guild_id: int
    db_path: Path


@dataclass(frozen=True, slots=True)
class HttpConfig:
    db_path: Path
    host: str
    port: int


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _positive_int(name: str, raw: str) -> int:
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _positive_int(name, _required_env(name))


def _db_path_from_env() -> Path:
    return Path(os.getenv("TIMECLOCK_DB_PATH", DEFAULT_DB_PATH).strip() or DEFAULT_DB_PATH)


def load_config() -> BotConfig:
    return BotConfig(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        db_path=_db_path_from_env(),
    )


def load_http_config() -> HttpConfig:
    port_raw = os.getenv("HTTP_PORT", str(DEFAULT_HTTP_PORT)).strip()
    return HttpConfig(
        db_path=_db_path_from_env(),
        host=os.getenv("HTTP_HOST", DEFAULT_HTTP_HOST).strip() or DEFAULT_HTTP_HOST,
        port=_positive_int("HTTP_PORT", port_raw),
    )
