from __future__ import annotations

import pytest

from stocksync.config.loader import ConfigurationError, parse_config


@pytest.mark.parametrize(
    "data, location",
    [
        ({"sites": {"x": {"platform": "magento", "base_url": "https://x"}}}, "sites/x/platform"),
        ({"sites": {"x": {"platform": "wordpress"}}}, "sites/x"),
        ({"sync": {"batch_size": 500}}, "sync/batch_size"),
        ({"sync": {"batch_size": 0}}, "sync/batch_size"),
        ({"workflow_steps": [{"key": "a", "name": "A"}]}, "workflow_steps/0"),
        ({"workflow_steps": [{"key": "a", "name": "A", "order": 1, "colour": "red"}]}, "workflow_steps/0"),
        ({"sites": {"x": {"platform": "shopify", "base_url": "https://x", "location_id": "main"}}},
         "sites/x/location_id"),
    ],
)
def test_invalid_config_reports_location(data, location):
    with pytest.raises(ConfigurationError) as info:
        parse_config(data)
    assert f"at {location}:" in str(info.value)


def test_minimal_config_is_valid():
    cfg = parse_config({})
    assert cfg.sites == {}
    assert len(cfg.workflow_steps) == 7
