from __future__ import annotations

from pathlib import Path

import pytest

from stocksync.config.loader import (
    DEFAULT_BATCH_SIZE,
    ConfigurationError,
    load_config,
    load_workflow_steps,
    parse_config,
)
from stocksync.models.site import Platform
from stocksync.pipeline.steps import DEFAULT_WORKFLOW

CONFIG_YAML = """
workflow_steps:
  - {key: finalizeData, name: Finalize, order: 7}
  - {key: cleanClosingStock, name: Clean, order: 1, mandatory: true}
  - {key: deduplicateClosingStock, name: Dedupe, order: 2, enabled: false}
sites:
  main-store:
    platform: wordpress
    base_url: https://shop.example.com/
    credentials:
      consumer_key: ck_yaml
      consumer_secret: cs_yaml
  outlet:
    platform: shopify
    base_url: https://outlet.myshopify.com
    location_id: 42
    credentials:
      access_token: null
sync:
  batch_size: 50
database:
  host: db.local
  port: 5433
"""


def _write(temp_workdir: Path, text: str) -> Path:
    path = temp_workdir / "config" / "stocksync.yml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_builds_domain_objects(temp_workdir, monkeypatch):
    monkeypatch.setenv("STOCKSYNC_OUTLET_ACCESS_TOKEN", "shpat_env")
    cfg = load_config(_write(temp_workdir, CONFIG_YAML))

    assert [s.key for s in cfg.workflow_steps] == ["cleanClosingStock", "deduplicateClosingStock", "finalizeData"]
    dedupe = cfg.workflow_steps[1]
    assert dedupe.enabled is False and dedupe.runs is False

    woo = cfg.site("main-store")
    assert woo.platform is Platform.WORDPRESS
    assert woo.base_url == "https://shop.example.com"
    assert woo.credential("consumer_key") == "ck_yaml"

    shop = cfg.site("outlet")
    assert shop.location_id == 42
    assert shop.credential("access_token") == "shpat_env"

    assert cfg.batch_size == 50
    assert cfg.database.host == "db.local"
    assert cfg.database.port == 5433


def test_missing_file_raises(temp_workdir):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(temp_workdir / "config" / "missing.yml")


def test_invalid_yaml_raises(temp_workdir):
    with pytest.raises(ConfigurationError, match="invalid yaml"):
        load_config(_write(temp_workdir, "sites: [unclosed"))


def test_unknown_site_raises():
    cfg = parse_config({})
    assert cfg.batch_size == DEFAULT_BATCH_SIZE
    with pytest.raises(ConfigurationError, match="unknown site"):
        cfg.site("nope")


def test_missing_credentials_name_the_env_variable(monkeypatch):
    monkeypatch.delenv("STOCKSYNC_MAIN_STORE_CONSUMER_SECRET", raising=False)
    data = {
        "sites": {
            "main-store": {
                "platform": "wordpress",
                "base_url": "https://shop.example.com",
                "credentials": {"consumer_key": "ck"},
            }
        }
    }
    with pytest.raises(ConfigurationError, match="STOCKSYNC_MAIN_STORE_CONSUMER_SECRET"):
        parse_config(data)


def test_shopify_requires_location_id():
    data = {
        "sites": {
            "outlet": {
                "platform": "shopify",
                "base_url": "https://outlet.myshopify.com",
                "credentials": {"access_token": "tok"},
            }
        }
    }
    with pytest.raises(ConfigurationError, match="location_id"):
        parse_config(data)


def test_workflow_defaults_when_section_absent():
    assert load_workflow_steps(None) == list(DEFAULT_WORKFLOW)


def test_duplicate_workflow_keys_rejected():
    raw = [
        {"key": "finalizeData", "name": "a", "order": 1},
        {"key": "finalizeData", "name": "b", "order": 2},
    ]
    with pytest.raises(ConfigurationError, match="duplicate"):
        load_workflow_steps(raw)
