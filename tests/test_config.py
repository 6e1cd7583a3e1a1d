"""
Tests for settings loading and logger setup.
"""
import logging

import pytest
from pydantic import ValidationError

from eamodel.config import LOGGER_NAMES, EngineSettings, configure_logging
from eamodel.engine import MetaModelEngine

ENV_VARS = [
    "EAMODEL_DATABASE_URL",
    "EAMODEL_SQL_ECHO",
    "EAMODEL_LOG_LEVEL",
    "EAMODEL_DEFAULT_PAGE_SIZE",
    "EAMODEL_MAX_PAGE_SIZE",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Unset every EAMODEL_* variable and run from a directory without a .env file."""
    for name in ENV_VARS:
        # setenv first so teardown removes anything load_dotenv() adds
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_defaults(clean_env, tmp_path):
    settings = EngineSettings.from_env(dotenv_path=str(tmp_path / "absent.env"))
    assert settings.database_url == "sqlite:///eamodel.db"
    assert settings.sql_echo is False
    assert settings.log_level == "INFO"
    assert (settings.default_page_size, settings.max_page_size) == (50, 100)


def test_from_environment(clean_env, tmp_path):
    clean_env.setenv("EAMODEL_DATABASE_URL", "postgresql://ea@localhost/ea")
    clean_env.setenv("EAMODEL_SQL_ECHO", "yes")
    clean_env.setenv("EAMODEL_LOG_LEVEL", "debug")
    clean_env.setenv("EAMODEL_DEFAULT_PAGE_SIZE", "25")
    settings = EngineSettings.from_env(dotenv_path=str(tmp_path / "absent.env"))
    assert settings.database_url == "postgresql://ea@localhost/ea"
    assert settings.sql_echo is True
    assert settings.log_level == "DEBUG"
    assert settings.default_page_size == 25


def test_from_dotenv_file(clean_env, tmp_path):
    dotenv = tmp_path / "settings.env"
    dotenv.write_text("EAMODEL_MAX_PAGE_SIZE=200\nEAMODEL_SQL_ECHO=0\n")
    settings = EngineSettings.from_env(dotenv_path=str(dotenv))
    assert settings.max_page_size == 200
    assert settings.sql_echo is False


def test_page_sizes_validated():
    with pytest.raises(ValidationError):
        EngineSettings(default_page_size=500, max_page_size=100)
    with pytest.raises(ValidationError):
        EngineSettings(max_page_size=0)


def test_configure_logging():
    configure_logging("DEBUG")
    configure_logging("DEBUG")
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        assert logger.level == logging.DEBUG
        assert len([h for h in logger.handlers if isinstance(h, logging.StreamHandler)]) == 1


def test_engine_from_settings(tmp_path):
    settings = EngineSettings(database_url=f"sqlite:///{tmp_path / 'ea.db'}")
    engine = MetaModelEngine.from_settings(settings)
    created = engine.create_node("process", {"project_id": 1, "name": "Onboarding", "created_by": "alice"})
    assert engine.list_nodes(1, "process")[0].id == created.id
    engine.store.engine.dispose()
