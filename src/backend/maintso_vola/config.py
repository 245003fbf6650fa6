"""
Runtime configuration for the admin backend.

Every value can be set through an environment variable; values passed to
``load_config`` as overrides are used when the variable is absent.
"""

from __future__ import annotations

import logging
import os
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel

DEFAULT_TIMEZONE = "Indian/Antananarivo"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


class DatabaseConfig(BaseModel):
    url: Optional[str] = None
    echo: bool = False
    pool_pre_ping: bool = True
    create_schema: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return load_config().database


class DashboardConfig(BaseModel):
    timezone: str = DEFAULT_TIMEZONE
    new_user_window_days: int = 7
    # No trend computation exists upstream yet; the figure is shown as-is.
    revenue_increase_placeholder: float = 8.0
    active_project_status: str = "actif"
    pending_project_status: str = "en attente"
    top_culture_types: int = 4
    recent_items_per_source: int = 2
    recent_activity_limit: int = 4
    upcoming_milestone_limit: int = 4


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = LOG_FORMAT
    datefmt: str = "%H:%M:%S"


class ServerConfig(BaseModel):
    cors_origins: List[str] = ["*"]


class AppConfig(BaseModel):
    database: DatabaseConfig = DatabaseConfig()
    dashboard: DashboardConfig = DashboardConfig()
    logging: LoggingConfig = LoggingConfig()
    server: ServerConfig = ServerConfig()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config(overrides: Optional[Mapping[str, Any]] = None) -> AppConfig:
    cfg = AppConfig()
    overrides = overrides or {}

    db_cfg = overrides.get("database", {})
    cfg.database = DatabaseConfig(
        url=os.getenv("MAINTSO_DATABASE_URL", db_cfg.get("url", cfg.database.url)),
        echo=_env_bool("MAINTSO_DATABASE_ECHO", db_cfg.get("echo", cfg.database.echo)),
        pool_pre_ping=db_cfg.get("pool_pre_ping", cfg.database.pool_pre_ping),
        create_schema=_env_bool(
            "MAINTSO_DATABASE_CREATE_SCHEMA", db_cfg.get("create_schema", cfg.database.create_schema)
        ),
    )

    dash_cfg = overrides.get("dashboard", {})
    defaults = cfg.dashboard
    cfg.dashboard = DashboardConfig(
        timezone=os.getenv("MAINTSO_TIMEZONE", dash_cfg.get("timezone", defaults.timezone)),
        new_user_window_days=_env_int(
            "MAINTSO_NEW_USER_WINDOW_DAYS", dash_cfg.get("new_user_window_days", defaults.new_user_window_days)
        ),
        revenue_increase_placeholder=_env_float(
            "MAINTSO_REVENUE_INCREASE_PLACEHOLDER",
            dash_cfg.get("revenue_increase_placeholder", defaults.revenue_increase_placeholder),
        ),
        active_project_status=dash_cfg.get("active_project_status", defaults.active_project_status),
        pending_project_status=dash_cfg.get("pending_project_status", defaults.pending_project_status),
        top_culture_types=dash_cfg.get("top_culture_types", defaults.top_culture_types),
        recent_items_per_source=dash_cfg.get("recent_items_per_source", defaults.recent_items_per_source),
        recent_activity_limit=dash_cfg.get("recent_activity_limit", defaults.recent_activity_limit),
        upcoming_milestone_limit=dash_cfg.get("upcoming_milestone_limit", defaults.upcoming_milestone_limit),
    )

    log_cfg = overrides.get("logging", {})
    cfg.logging = LoggingConfig(
        level=os.getenv("MAINTSO_LOG_LEVEL", log_cfg.get("level", cfg.logging.level)).upper(),
        format=log_cfg.get("format", cfg.logging.format),
        datefmt=log_cfg.get("datefmt", cfg.logging.datefmt),
    )

    server_cfg = overrides.get("server", {})
    cfg.server = ServerConfig(
        cors_origins=_env_list("MAINTSO_CORS_ORIGINS", server_cfg.get("cors_origins", cfg.server.cors_origins)),
    )

    return cfg


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    cfg = config or LoggingConfig()
    logging.basicConfig(level=cfg.level, format=cfg.format, datefmt=cfg.datefmt)
