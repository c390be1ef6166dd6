"""Process configuration: read from the environment (and an optional .env)."""

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ValidationError

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_PORT = 8080
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(Exception):
    """Raised when the process cannot start with the given environment."""


class Settings(BaseModel):
    api_key: str
    api_url: str = OPENAI_API_URL
    model: str = DEFAULT_MODEL
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    static_dir: Path = Path("static")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        api_key = env.get("OPENAI_API_KEY", "").strip()
        if not api_key:
            raise ConfigError("Please set the OPENAI_API_KEY environment variable")

        values: dict = {"api_key": api_key}
        for field, var in (
            ("api_url", "OPENAI_API_URL"),
            ("model", "OPENAI_MODEL"),
            ("host", "HOST"),
            ("port", "PORT"),
            ("static_dir", "STATIC_DIR"),
            ("log_level", "LOG_LEVEL"),
        ):
            value = env.get(var, "").strip()
            if value:
                values[field] = value

        try:
            settings = cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
        if not 0 < settings.port < 65536:
            raise ConfigError(f"PORT must be between 1 and 65535, got {settings.port}")
        settings.log_level = settings.log_level.upper()
        if settings.log_level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        return settings
