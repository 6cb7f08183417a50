from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

NOTIFICATION_MODES = ("ask", "granted", "denied", "off")


@dataclass(frozen=True)
class Settings:
    db_path: Path
    snapshot_key: str
    sweep_interval_ms: int
    notifications: str
    log_level: str


def load_settings() -> Settings:
    env_path = os.getenv("FADENOTES_DB_PATH")
    db_path = Path(env_path) if env_path else Path.home() / ".fadenotes" / "fadenotes.db"
    snapshot_key = os.getenv("FADENOTES_SNAPSHOT_KEY", "notes")
    sweep_interval_ms = int(os.getenv("FADENOTES_SWEEP_INTERVAL_MS", "1000"))
    if sweep_interval_ms <= 0:
        raise ValueError("FADENOTES_SWEEP_INTERVAL_MS must be positive")
    notifications = os.getenv("FADENOTES_NOTIFICATIONS", "ask").strip().lower()
    if notifications not in NOTIFICATION_MODES:
        raise ValueError(
            f"FADENOTES_NOTIFICATIONS must be one of {', '.join(NOTIFICATION_MODES)}"
        )
    log_level = os.getenv("FADENOTES_LOG_LEVEL", "WARNING").upper()
    return Settings(
        db_path=db_path,
        snapshot_key=snapshot_key,
        sweep_interval_ms=sweep_interval_ms,
        notifications=notifications,
        log_level=log_level,
    )
