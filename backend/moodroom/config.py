from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Settings:
    def __init__(self) -> None:
        self.port = int(os.getenv("PORT", "3002"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        self.history_limit = max(1, int(os.getenv("HISTORY_LIMIT", "100")))
        self.max_name_length = max(1, int(os.getenv("MAX_NAME_LENGTH", "50")))
        self.room_idle_timeout_seconds = max(
            1,
            int(os.getenv("ROOM_IDLE_TIMEOUT_SECONDS", str(30 * 60))),
        )
        self.room_sweep_interval_seconds = max(
            1,
            int(os.getenv("ROOM_SWEEP_INTERVAL_SECONDS", str(5 * 60))),
        )
        # Frames a slow socket may fall behind by before it is dropped.
        self.outbound_queue_size = max(1, int(os.getenv("OUTBOUND_QUEUE_SIZE", "256")))
        self.trust_forwarded_for = _env_flag("TRUST_FORWARDED_FOR", True)
        # Game type tags whose turn actions only the current player may send.
        self.turn_gated_games = frozenset(_env_list("TURN_GATED_GAMES"))
        self.cors_allow_origins = list(_env_list("CORS_ALLOW_ORIGINS", "*")) or ["*"]


settings = Settings()
