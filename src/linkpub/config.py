"""Configuration models and enums for linkpub."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, model_validator

DEFAULT_SESSION_SECRET = "linkpub-secret-key-change-in-production"


class EpubVariant(str, Enum):
    PLAIN = "plain"
    COVER = "cover"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SEPIA = "sepia"


class Settings(BaseModel):
    """Server settings, usually read from the environment."""

    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)
    session_secret: str = DEFAULT_SESSION_SECRET
    session_max_age_seconds: int = Field(default=24 * 60 * 60, gt=0)
    data_dir: Path = Path("data")
    users_file: Path | None = None
    karakeep_url: str | None = None
    karakeep_key: str | None = None
    log_level: str = "INFO"
    log_file: Path | None = None

    @model_validator(mode="after")
    def default_users_file(self) -> "Settings":
        if self.users_file is None:
            self.users_file = self.data_dir / "users.json"
        return self

    @property
    def epubs_dir(self) -> Path:
        return self.data_dir / "epubs"

    @property
    def karakeep_enabled(self) -> bool:
        return bool(self.karakeep_url and self.karakeep_key)

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        """Build settings from environment variables and an optional .env file."""

        load_dotenv(dotenv_path=env_file or find_dotenv(usecwd=True))
        values: dict[str, object] = {}
        mapping = {
            "HOST": "host",
            "PORT": "port",
            "SESSION_SECRET": "session_secret",
            "LINKPUB_DATA_DIR": "data_dir",
            "LINKPUB_USERS_FILE": "users_file",
            "KARAKEEP_URL": "karakeep_url",
            "KARAKEEP_KEY": "karakeep_key",
            "LOG_LEVEL": "log_level",
            "LOG_FILE": "log_file",
        }
        for env_name, field_name in mapping.items():
            raw = os.environ.get(env_name)
            if raw:
                values[field_name] = raw
        return cls(**values)
