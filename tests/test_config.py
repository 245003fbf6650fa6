from __future__ import annotations

from backend.maintso_vola.config import DEFAULT_TIMEZONE, DatabaseConfig, load_config


def test_defaults(monkeypatch):
    for name in ("MAINTSO_DATABASE_URL", "MAINTSO_TIMEZONE", "MAINTSO_LOG_LEVEL", "MAINTSO_CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)

    cfg = load_config()

    assert cfg.database.url is None
    assert cfg.dashboard.timezone == DEFAULT_TIMEZONE
    assert cfg.dashboard.new_user_window_days == 7
    assert cfg.dashboard.revenue_increase_placeholder == 8.0
    assert cfg.logging.level == "INFO"
    assert cfg.server.cors_origins == ["*"]


def test_environment_wins_over_overrides(monkeypatch):
    monkeypatch.setenv("MAINTSO_DATABASE_URL", "postgresql://u:p@db/maintso")
    monkeypatch.setenv("MAINTSO_NEW_USER_WINDOW_DAYS", "14")
    monkeypatch.setenv("MAINTSO_CORS_ORIGINS", "http://localhost:5173, https://admin.example.mg")
    monkeypatch.setenv("MAINTSO_LOG_LEVEL", "debug")

    cfg = load_config({"database": {"url": "sqlite://"}, "dashboard": {"new_user_window_days": 3, "top_culture_types": 6}})

    assert cfg.database.url == "postgresql://u:p@db/maintso"
    assert cfg.dashboard.new_user_window_days == 14
    assert cfg.dashboard.top_culture_types == 6
    assert cfg.server.cors_origins == ["http://localhost:5173", "https://admin.example.mg"]
    assert cfg.logging.level == "DEBUG"


def test_invalid_numbers_fall_back(monkeypatch):
    monkeypatch.setenv("MAINTSO_NEW_USER_WINDOW_DAYS", "une semaine")
    monkeypatch.setenv("MAINTSO_REVENUE_INCREASE_PLACEHOLDER", "n/a")
    monkeypatch.setenv("MAINTSO_DATABASE_CREATE_SCHEMA", "yes")

    cfg = load_config()

    assert cfg.dashboard.new_user_window_days == 7
    assert cfg.dashboard.revenue_increase_placeholder == 8.0
    assert cfg.database.create_schema is True


def test_database_config_from_env(monkeypatch):
    monkeypatch.setenv("MAINTSO_DATABASE_URL", "sqlite://")

    assert DatabaseConfig.from_env().url == "sqlite://"
