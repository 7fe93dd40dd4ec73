"""Client settings, read from the environment (and .env if present).

    OBSCURA_STORE_URL      base URL of the document store service
    OBSCURA_CHAT_WINDOW    most-recent chat messages kept in a SessionView
    OBSCURA_WATCH_TIMEOUT  seconds a watch request may be held open
    OBSCURA_HTTP_TIMEOUT   seconds for ordinary store requests
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from obscura.http_store import HttpStore


class ClientSettings(BaseModel):
    store_url: str = "http://localhost:13013"
    chat_window: int = Field(default=100, ge=1)
    watch_timeout: float = Field(default=25.0, gt=0)
    http_timeout: float = Field(default=10.0, gt=0)


def load_settings(env_file: Path | None = None) -> ClientSettings:
    """Build settings from OBSCURA_* variables; unset ones keep their defaults."""
    load_dotenv(env_file)
    values: dict[str, str] = {}
    for field in ClientSettings.model_fields:
        raw = os.getenv(f"OBSCURA_{field.upper()}")
        if raw is not None:
            values[field] = raw
    return ClientSettings.model_validate(values)


def make_store(settings: ClientSettings) -> HttpStore:
    return HttpStore(
        settings.store_url,
        timeout=settings.http_timeout,
        watch_timeout=settings.watch_timeout,
    )
