"""Application configuration utilities for the finanzas backend.

This module centralises environment-driven configuration so the rest of the
code base does not need to read environment variables directly.  Logging
set-up lives here as well because it is driven by the same environment.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load any variables defined in a local .env file. The call is idempotent, so
# running it at import time keeps the API ergonomic.
load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class AppConfig:
    """Strongly-typed container for runtime configuration.

    Attributes:
        project_root: Root directory of the project. Used to derive default
            paths so the app works out of the box after cloning the repo.
        database_file: Absolute path to the SQLite database holding every
            user's transactions, goals, plans, credit purchases and
            investments.
        log_level: Name of the root logging level (``INFO``, ``DEBUG``...).
        dolar_api_endpoint: Endpoint listing the Argentine dollar quotes.
        data912_endpoint: Base URL of the data912 live market feeds.
        openai_api_key: Optional key for the OpenAI-compatible chat API used
            by the voice assistant.
        openai_base_url: Base URL of the OpenAI-compatible API.
        openai_model: Model requested from the chat API.
        http_timeout: Timeout in seconds applied to every upstream request.
    """

    project_root: Path
    database_file: Path
    log_level: str
    dolar_api_endpoint: str
    data912_endpoint: str
    openai_api_key: Optional[str]
    openai_base_url: str
    openai_model: str
    http_timeout: float

    @property
    def assistant_enabled(self) -> bool:
        return bool(self.openai_api_key)


def load_config() -> AppConfig:
    """Create a new :class:`AppConfig` instance based on environment settings.

    Environment variables override the default values, allowing users to
    customise the runtime without touching the source code. Unit tests can
    supply patched environments and call the function again.
    """

    project_root = Path(__file__).resolve().parent.parent
    database_file = Path(
        getenv_with_default(
            "FINANZAS_DB_FILE",
            project_root / "finanzas.db",
        )
    )

    log_level = getenv_with_default("FINANZAS_LOG_LEVEL", "INFO").upper()
    dolar_api_endpoint = getenv_with_default(
        "DOLAR_API_ENDPOINT",
        "https://dolarapi.com/v1/dolares",
    )
    data912_endpoint = getenv_with_default(
        "DATA912_ENDPOINT",
        "https://data912.com/live",
    )
    openai_api_key = getenv_with_default("OPENAI_API_KEY")
    openai_base_url = getenv_with_default(
        "OPENAI_API_BASE_URL",
        "https://openrouter.ai/api/v1",
    )
    openai_model = getenv_with_default("OPENAI_MODEL", "deepseek/deepseek-r1:free")
    http_timeout = float(getenv_with_default("FINANZAS_HTTP_TIMEOUT", "30"))

    # Ensure the directories exist so later code can safely create files.
    database_file.parent.mkdir(parents=True, exist_ok=True)

    return AppConfig(
        project_root=project_root,
        database_file=database_file,
        log_level=log_level,
        dolar_api_endpoint=dolar_api_endpoint,
        data912_endpoint=data912_endpoint.rstrip("/"),
        openai_api_key=openai_api_key or None,
        openai_base_url=openai_base_url.rstrip("/"),
        openai_model=openai_model,
        http_timeout=http_timeout,
    )


def cors_origins() -> list[str]:
    """Origins allowed to call the API from a browser (``FINANZAS_CORS_ORIGINS``, comma separated)."""

    raw = getenv_with_default("FINANZAS_CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()] or ["*"]


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the whole process."""

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def getenv_with_default(name: str, default: Optional[Path | str] = None) -> Optional[str]:
    """Return the value of an environment variable or a sensible default.

    ``None`` values are propagated so callers can make explicit decisions about
    optional configuration values. Paths are converted to strings, keeping the
    return type uniform and easy to serialise.
    """

    from os import getenv

    value = getenv(name)
    if value is not None:
        return value
    if default is None:
        return None
    return str(default)
