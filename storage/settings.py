"""
storage/settings.py

Environment configuration for the case quiz.

Replica credentials are optional: without both the URL and the auth token
the store runs local-only and sync is skipped (no error is raised).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

_PROJECT_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_DB_PATH: Path = _PROJECT_ROOT / "data" / "casequiz.db"
DEFAULT_API_URL = "http://localhost:3000"


class Settings(BaseModel):
    db_path: Path = DEFAULT_DB_PATH
    replica_url: Optional[str] = None
    replica_auth_token: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    api_timeout: float = Field(default=60.0, gt=0)
    min_unused_cases: int = Field(default=3, ge=0)

    @property
    def replica_enabled(self) -> bool:
        return bool(self.replica_url and self.replica_auth_token)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Build :class:`Settings` from the process environment.

    Unset or empty variables fall back to the model defaults.  Malformed
    numbers raise ``pydantic.ValidationError``.
    """
    env = os.environ if environ is None else environ
    mapping = {
        "db_path": "CASEQUIZ_DB_PATH",
        "replica_url": "CASEQUIZ_REPLICA_URL",
        "replica_auth_token": "CASEQUIZ_REPLICA_AUTH_TOKEN",
        "api_url": "CASEQUIZ_API_URL",
        "api_timeout": "CASEQUIZ_API_TIMEOUT",
        "min_unused_cases": "CASEQUIZ_MIN_UNUSED_CASES",
    }
    values = {field: env.get(var) for field, var in mapping.items() if env.get(var)}
    return Settings(**values)
