"""
Tracker configuration.

Values come from the environment; a ``.env`` file at the project root is
loaded first with python-dotenv and never overrides variables that are
already set.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(dotenv_path=PROJECT_ROOT / ".env", override=False)


def _split(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass
class Settings:
    env: str = "development"
    storage_backend: str = "json"
    data_dir: str = str(PROJECT_ROOT / "data")
    database_url: Optional[str] = None
    port: int = 3001
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    frontend_dist: str = str(PROJECT_ROOT / "frontend" / "dist")
    log_level: str = "INFO"
    admin_email: str = "admin@tracker.local"
    admin_password: str = "admin"
    admin_name: str = "Administrator"
    stale_days: int = 21

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            env=os.getenv("TRACKER_ENV", "development").strip().lower(),
            storage_backend=os.getenv("STORAGE_BACKEND", "json").strip().lower(),
            data_dir=os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")),
            database_url=os.getenv("DATABASE_URL") or None,
            port=int(os.getenv("PORT", "3001")),
            allowed_origins=_split(os.getenv("ALLOWED_ORIGINS", "*")),
            frontend_dist=os.getenv("FRONTEND_DIST", str(PROJECT_ROOT / "frontend" / "dist")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            admin_email=os.getenv("ADMIN_EMAIL", "admin@tracker.local"),
            admin_password=os.getenv("ADMIN_PASSWORD", "admin"),
            admin_name=os.getenv("ADMIN_NAME", "Administrator"),
            stale_days=int(os.getenv("STALE_DAYS", "21")),
        )
