"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from webextract.config import (
    AppConfig,
    DatabaseType,
    LogLevel,
    get_config,
    get_development_config,
    get_production_config,
    get_testing_config,
    load_config,
    reset_config,
    validate_config,
)


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


class TestAppConfig:
    """Defaults, validators and derived settings."""

    def test_defaults(self):
        config = AppConfig()

        assert config.database_url == "sqlite:///./webextract.db"
        assert config.database_type == DatabaseType.SQLITE
        assert config.is_sqlite
        assert config.get_database_connect_args() == {"check_same_thread": False}
        assert config.continue_on_failure
        assert config.node_timeout is None
        assert config.max_extraction_chars == 6_000_000

    def test_postgres_url(self):
        config = AppConfig(database_url="postgresql+psycopg2://u:p@db/webextract")

        assert config.database_type == DatabaseType.POSTGRESQL
        assert config.get_database_connect_args() == {}

    @pytest.mark.parametrize("field,value", [
        ("database_url", "oracle://db"),
        ("database_url", ""),
        ("port", 0),
        ("max_node_workers", 0),
        ("max_concurrent_runs", 0),
        ("node_timeout", 0),
        ("max_retained_runs", 0),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            AppConfig(**{field: value})

    def test_uvicorn_config(self):
        config = AppConfig(port=9000, log_level=LogLevel.WARNING)

        assert config.get_uvicorn_config() == {
            "host": "0.0.0.0", "port": 9000, "reload": False, "log_level": "warning", "access_log": False,
        }


class TestEnvironmentLoading:
    """Reading WEBEXTRACT_ variables."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WEBEXTRACT_PORT", "9001")
        monkeypatch.setenv("WEBEXTRACT_CONTINUE_ON_FAILURE", "false")
        monkeypatch.setenv("WEBEXTRACT_NODE_TIMEOUT", "12.5")
        monkeypatch.setenv("WEBEXTRACT_CORS_ORIGINS", "https://a.test,https://b.test")
        monkeypatch.setenv("WEBEXTRACT_LOG_LEVEL", "debug")
        monkeypatch.setenv("WEBEXTRACT_MAX_NODE_WORKERS", "")

        config = AppConfig.from_env()

        assert config.port == 9001
        assert config.continue_on_failure is False
        assert config.node_timeout == 12.5
        assert config.cors_origins == ["https://a.test", "https://b.test"]
        assert config.log_level == LogLevel.DEBUG
        assert config.max_node_workers == 4

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_load_config_from_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WEBEXTRACT_APP_NAME", "placeholder")
        monkeypatch.delenv("WEBEXTRACT_APP_NAME")
        env_file = tmp_path / "test.env"
        env_file.write_text("WEBEXTRACT_APP_NAME=FromFile\n")

        config = load_config(str(env_file))

        assert config.app_name == "FromFile"
        assert get_config() is config


class TestValidateConfig:
    """Cross-field checks."""

    def test_valid(self, tmp_path):
        validate_config(AppConfig(database_url=f"sqlite:///{tmp_path}/data/app.db"))
        assert (tmp_path / "data").is_dir()

    def test_bad_base_url(self):
        with pytest.raises(ValueError, match="OpenRouter base URL"):
            validate_config(AppConfig(openrouter_base_url="openrouter.ai"))


class TestPresets:
    """Environment presets."""

    def test_development(self):
        config = get_development_config()
        assert config.debug and not config.browser_headless

    def test_production(self):
        config = get_production_config()
        assert config.structured_logging
        assert config.node_timeout == 300
        assert config.cors_origins == []

    def test_testing(self):
        config = get_testing_config()
        assert config.database_url == "sqlite:///:memory:"
        assert config.node_timeout == 10
        assert not config.enable_request_logging
