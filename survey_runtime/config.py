"""
Runtime configuration.
Centralized environment variables and defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from survey_kernel.constants import HISTORY_CAP

load_dotenv()


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass(frozen=True)
class RuntimeConfig:
    """
    history_dir   : directory holding draw_history.json (primary backend)
    cache_db      : sqlite file mirroring the history (local cache)
    database_url  : PostgreSQL URL; when set it replaces the JSON file
    draw_seed     : fixed seed for reproducible draws (None = OS entropy)
    """

    history_dir: str = "data"
    cache_db: str = "draw_history_cache.db"
    history_cap: int = HISTORY_CAP
    draw_seed: Optional[int] = None
    database_url: str = ""
    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        return cls(
            history_dir=os.getenv("SURVEY_HISTORY_DIR", "data"),
            cache_db=os.getenv("SURVEY_CACHE_DB", "draw_history_cache.db"),
            history_cap=int(os.getenv("SURVEY_HISTORY_CAP", str(HISTORY_CAP))),
            draw_seed=_optional_int(os.getenv("SURVEY_DRAW_SEED")),
            database_url=os.getenv("DATABASE_URL", ""),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
