"""Shared fixtures: a throwaway SQLite repository and a service with a fixed clock."""
from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from finanzas.config import AppConfig
from finanzas.database import SQLiteRepository
from finanzas.services import FinanceService

TODAY = date(2024, 5, 15)
USER = "user-1"
OTHER_USER = "user-2"


@pytest.fixture
def repository(tmp_path):
    repo = SQLiteRepository(tmp_path / "finanzas.db")
    repo.initialise_schema()
    yield repo
    repo.close()


@pytest.fixture
def service(repository):
    return FinanceService(repository, clock=lambda: TODAY)


def make_config(**overrides) -> AppConfig:
    values = dict(
        project_root=Path("."),
        database_file=Path("finanzas.db"),
        log_level="INFO",
        dolar_api_endpoint="https://dolar.test/v1/dolares",
        data912_endpoint="https://data912.test/live",
        openai_api_key=None,
        openai_base_url="https://llm.test/api/v1",
        openai_model="test-model",
        http_timeout=5.0,
    )
    values.update(overrides)
    return AppConfig(**values)
