from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from stocksync.models.site import Platform, SiteConfig
from stocksync.models.workflow import WorkflowStep
from stocksync.pipeline.steps import DEFAULT_WORKFLOW

"""YAML configuration loader.

Responsibilities:
- Load config/stocksync.yml
- Validate against CONFIG_SCHEMA (jsonschema)
- Resolve site credentials (YAML first, then STOCKSYNC_<SITE>_<FIELD> env vars)
- Build WorkflowStep / SiteConfig domain objects
"""

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "AppConfig",
    "CONFIG_SCHEMA",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "parse_config",
    "load_workflow_steps",
]

DEFAULT_CONFIG_PATH = Path("config/stocksync.yml")
DEFAULT_BATCH_SIZE = 100

# 各プラットフォームで必須の認証情報キー
REQUIRED_CREDENTIALS: dict[Platform, tuple[str, ...]] = {
    Platform.WORDPRESS: ("consumer_key", "consumer_secret"),
    Platform.SHOPIFY: ("access_token",),
}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "workflow_steps": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["key", "name", "order"],
                "properties": {
                    "key": {"type": "string", "minLength": 1},
                    "name": {"type": "string"},
                    "order": {"type": "integer"},
                    "enabled": {"type": "boolean"},
                    "mandatory": {"type": "boolean"},
                    "description": {"type": "string"},
                },
                "additionalProperties": False,
            },
        },
        "sites": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["platform", "base_url"],
                "properties": {
                    "platform": {"enum": [p.value for p in Platform]},
                    "base_url": {"type": "string", "minLength": 1},
                    "currency_symbol": {"type": "string"},
                    "user": {"type": "string"},
                    "location_id": {"type": "integer"},
                    "api_version": {"type": "string"},
                    "credentials": {
                        "type": "object",
                        "additionalProperties": {"type": ["string", "null"]},
                    },
                },
                "additionalProperties": False,
            },
        },
        "sync": {
            "type": "object",
            "properties": {
                "batch_size": {"type": "integer", "minimum": 1, "maximum": 100},
            },
        },
        "database": {
            "type": "object",
            "properties": {
                "host": {"type": ["string", "null"]},
                "port": {"type": ["integer", "null"]},
                "user": {"type": ["string", "null"]},
                "password": {"type": ["string", "null"]},
                "database": {"type": ["string", "null"]},
                "dsn": {"type": ["string", "null"]},
            },
        },
    },
}


class ConfigurationError(Exception):
    """Missing or invalid configuration. Raised before any network call."""


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class AppConfig:
    workflow_steps: list[WorkflowStep]
    sites: dict[str, SiteConfig]
    batch_size: int
    database: DatabaseConfig

    def site(self, name: str) -> SiteConfig:
        try:
            return self.sites[name]
        except KeyError:
            raise ConfigurationError(
                f"unknown site '{name}' (configured: {sorted(self.sites)})"
            ) from None


def _validate_config_schema(data: dict[str, Any]) -> None:
    try:
        jsonschema.validate(data, CONFIG_SCHEMA)
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"config validation failed at {location}: {e.message}") from e


def _env_key(site_name: str, field: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "_", site_name).strip("_").upper()
    return f"STOCKSYNC_{slug}_{field.upper()}"


def _build_site(name: str, raw: dict[str, Any]) -> SiteConfig:
    platform = Platform(raw["platform"])
    credentials = {k: v for k, v in (raw.get("credentials") or {}).items() if v}
    for field in REQUIRED_CREDENTIALS[platform]:
        if field not in credentials:
            env_value = os.getenv(_env_key(name, field))
            if env_value:
                credentials[field] = env_value
    missing = [f for f in REQUIRED_CREDENTIALS[platform] if f not in credentials]
    if missing:
        raise ConfigurationError(
            f"site '{name}': missing credentials {missing} "
            f"(set them in YAML or {', '.join(_env_key(name, f) for f in missing)})"
        )
    location_id = raw.get("location_id")
    if platform is Platform.SHOPIFY and location_id is None:
        raise ConfigurationError(f"site '{name}': shopify sites require location_id")
    return SiteConfig(
        name=name,
        platform=platform,
        base_url=raw["base_url"].rstrip("/"),
        credentials=credentials,
        currency_symbol=raw.get("currency_symbol", "₹"),
        user=raw.get("user", ""),
        location_id=location_id,
        api_version=raw.get("api_version", "2023-10"),
    )


def load_workflow_steps(raw_steps: list[dict[str, Any]] | None) -> list[WorkflowStep]:
    """Build WorkflowStep objects; falls back to the default workflow when absent."""
    if raw_steps is None:
        return list(DEFAULT_WORKFLOW)
    keys = [s["key"] for s in raw_steps]
    duplicates = sorted({k for k in keys if keys.count(k) > 1})
    if duplicates:
        raise ConfigurationError(f"duplicate workflow step keys: {duplicates}")
    steps = [
        WorkflowStep(
            key=s["key"],
            name=s["name"],
            order=s["order"],
            enabled=s.get("enabled", True),
            mandatory=s.get("mandatory", False),
            description=s.get("description", ""),
        )
        for s in raw_steps
    ]
    return sorted(steps, key=lambda s: s.order)


def parse_config(data: dict[str, Any]) -> AppConfig:
    _validate_config_schema(data)
    db_raw = data.get("database") or {}
    sites = {name: _build_site(name, raw) for name, raw in (data.get("sites") or {}).items()}
    return AppConfig(
        workflow_steps=load_workflow_steps(data.get("workflow_steps")),
        sites=sites,
        batch_size=(data.get("sync") or {}).get("batch_size", DEFAULT_BATCH_SIZE),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    if not path.exists():
        raise ConfigurationError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError("config root must be a mapping")
    return parse_config(data)
