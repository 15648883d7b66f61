"""Settings read from the environment (and a .env file, if present)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    bot_token: Optional[str] = None
    data_file: Optional[str] = None  # None keeps everything in memory
    log_level: str = "INFO"
    leaderboard_size: int = 10


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def load_settings(dotenv: bool = True, env_file: Optional[str] = None) -> Settings:
    """Build Settings from the environment, loading .env first unless told not to.

    Variables already set in the environment win over the .env file.
    """
    if dotenv:
        load_dotenv(env_file)
    return Settings(
        bot_token=os.getenv("BOT_TOKEN") or None,
        data_file=os.getenv("TTT_DATA_FILE") or None,
        log_level=(os.getenv("TTT_LOG_LEVEL") or "INFO").upper(),
        leaderboard_size=_int_env("TTT_LEADERBOARD_SIZE", 10),
    )
