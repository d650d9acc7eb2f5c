import pytest

from core import config as config_module


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()


def test_non_local_debug_mode_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("JWT_SECRET", "real-secret")
    monkeypatch.setenv("ENCRYPTION_KEY", "real-encryption-key")

    with pytest.raises(ValueError, match="debug=true"):
        config_module.get_settings()


def test_non_local_default_secrets_are_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", config_module.DEFAULT_JWT_SECRET)
    monkeypatch.setenv("ENCRYPTION_KEY", "real-encryption-key")

    with pytest.raises(ValueError, match="default JWT secret"):
        config_module.get_settings()


def test_non_local_default_encryption_key_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", "real-secret")
    monkeypatch.setenv("ENCRYPTION_KEY", config_module.DEFAULT_ENCRYPTION_KEY)

    with pytest.raises(ValueError, match="default encryption key"):
        config_module.get_settings()


def test_local_allows_dev_defaults(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", config_module.DEFAULT_JWT_SECRET)
    monkeypatch.setenv("ENCRYPTION_KEY", config_module.DEFAULT_ENCRYPTION_KEY)

    settings = config_module.get_settings()
    assert settings.app_env == "local"
    assert settings.upsert_chunk_size == 10
    assert settings.sync_max_pages == 100
    assert settings.sync_request_timeout_seconds == 30


def test_pipeline_settings_from_environment(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("UPSERT_CHUNK_SIZE", "25")
    monkeypatch.setenv("RISK_DEFAULT_STATUSES", '["processing"]')

    settings = config_module.get_settings()
    assert settings.upsert_chunk_size == 25
    assert settings.risk_default_statuses == ["processing"]
