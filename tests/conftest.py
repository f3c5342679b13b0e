"""Shared fixtures: offline database, logger, acting users and a rule set."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

import tracker.config as config_module
from tracker.config import AppConfig
from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger
from tracker.models.enums import UserRole
from tracker.models.user import User
from tracker.schema import initialize_schema
from tracker.services import ServiceContainer, create_services
from tracker.services.default_rules import default_rules
from tracker.services.rule_registry import RuleRegistry


@pytest.fixture(autouse=True, scope="session")
def _offline_config(tmp_path_factory: pytest.TempPathFactory) -> Iterator[AppConfig]:
    """Pin the config singleton to an offline setup writing logs to a temp dir."""
    log_dir: Path = tmp_path_factory.mktemp("logs")
    cfg = AppConfig(
        SUPABASE_URL="",
        SUPABASE_ANON_KEY="",
        SQLITE_PATH=Path(":memory:"),
        LOG_FILE=str(log_dir / "tracker-test.log"),
        SEED_DEFAULT_RULES=True,
    )
    previous = config_module._config_instance
    config_module._config_instance = cfg
    yield cfg
    config_module._config_instance = previous


@pytest.fixture
def config(_offline_config: AppConfig) -> AppConfig:
    return _offline_config


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="tracker.tests")


@pytest.fixture
def db(logger: StructuredLogger) -> Iterator[DatabaseManager]:
    """Offline DatabaseManager on an in-memory SQLite database."""
    manager = DatabaseManager("", "", Path(":memory:"), logger)
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def services(db: DatabaseManager, config: AppConfig) -> ServiceContainer:
    container = create_services(db=db, config=config)
    result = container["incentive_rule_service"].load_rules()
    assert result.success, result.error
    return container


@pytest.fixture
def superadmin() -> User:
    return User(id="admin-1", email="admin@example.com", role=UserRole.SUPERADMIN)


@pytest.fixture
def regular_user() -> User:
    return User(id="user-1", email="user@example.com", role=UserRole.USER)


@pytest.fixture
def registry() -> RuleRegistry:
    """Registry holding the two default bands, with stable ids."""
    standard, high = default_rules()
    return RuleRegistry(
        [
            standard.model_copy(update={"id": "standard"}),
            high.model_copy(update={"id": "high"}),
        ]
    )
