from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from stocksync.models.records import CanonicalStockRecord
from stocksync.models.sync import UpdateInstruction
from stocksync.remote import RemoteApiError, ShopifyClient

API = "https://outlet.myshopify.com/admin/api/2023-10/"


def _variant(vid: int, sku: str, **extra):
    data = {"id": vid, "sku": sku, "title": "Large", "price": "90.00", "compare_at_price": "100.00",
            "inventory_quantity": 4, "inventory_item_id": vid * 10}
    data.update(extra)
    return data


def _client(site, session) -> ShopifyClient:
    return ShopifyClient(site, session=session, rate_limiter=MagicMock())


def test_access_token_header(shopify_site, mock_session):
    _client(shopify_site, mock_session)
    assert mock_session.headers["X-Shopify-Access-Token"] == "shpat_test"


def test_every_call_waits_on_rate_limiter(shopify_site, mock_session, http_response):
    mock_session.request.return_value = http_response(200, {"shop": {"name": "Outlet"}})
    client = _client(shopify_site, mock_session)
    client.test_connection()
    client.test_connection()
    assert client.rate_limiter.wait.call_count == 2


def test_fetch_pages_until_all_skus_found(shopify_site, mock_session, http_response):
    next_url = f"{API}products.json?limit=250&page_info=abc"
    mock_session.request.side_effect = [
        http_response(200, {"products": [{"id": 1, "title": "Shirt", "variants": [_variant(11, "A1")]}]},
                      headers={"Link": f'<{next_url}>; rel="next"'}),
        http_response(200, {"products": [{"id": 2, "title": "Cap", "variants": [_variant(21, "B2", title=None)]}]},
                      headers={"Link": f'<{API}products.json?page_info=def>; rel="next"'}),
    ]
    client = _client(shopify_site, mock_session)
    found = client.fetch_products_by_sku(["A1", "B2"])

    assert mock_session.request.call_count == 2
    first = mock_session.request.call_args_list[0]
    assert first.args == ("GET", f"{API}products.json")
    assert first.kwargs["params"]["limit"] == 250
    a1, b2 = found
    assert (a1.remote_id, a1.sku, a1.name) == (11, "A1", "Shirt - Large")
    assert a1.regular_price == "100.00" and a1.sale_price == "90.00"
    assert a1.inventory_item_id == 110
    assert b2.name == "Cap"


def test_fetch_stops_on_empty_page(shopify_site, mock_session, http_response):
    mock_session.request.return_value = http_response(200, {"products": []})
    client = _client(shopify_site, mock_session)
    assert client.fetch_products_by_sku(["A1"]) == []
    assert mock_session.request.call_count == 1


def test_non_positive_regular_price_clears_compare_at(shopify_site, mock_session):
    client = _client(shopify_site, mock_session)
    from stocksync.remote import RemoteProductRecord

    remote = RemoteProductRecord(11, "A1", "50.00", "40.00", 3, "Shirt")
    changes = client.diff(CanonicalStockRecord("A1", 0, 40, 3, 40, 20), remote)
    assert changes["regular_price"].new is None
    # compare_at_price 未設定 (None) と 0 は同一扱い
    unset = RemoteProductRecord(11, "A1", None, "40.00", 3, "Shirt")
    assert client.diff(CanonicalStockRecord("A1", 0, 40, 3, 40, 20), unset) == {}


def test_update_puts_variant_then_sets_inventory(shopify_site, mock_session, http_response):
    mock_session.request.return_value = http_response(200, {})
    client = _client(shopify_site, mock_session)
    item = UpdateInstruction(11, "A1", 120, 99, 3, inventory_item_id=110)
    outcome = client.update_products([item])

    assert outcome.updated == [item]
    put, post = mock_session.request.call_args_list
    assert put.args == ("PUT", f"{API}variants/11.json")
    assert put.kwargs["json"] == {"variant": {"id": 11, "price": "99", "compare_at_price": "120"}}
    assert post.args == ("POST", f"{API}inventory_levels/set.json")
    assert post.kwargs["json"] == {"location_id": 777, "inventory_item_id": 110, "available": 3}


def test_one_failing_variant_does_not_block_others(shopify_site, mock_session, http_response):
    def respond(method, url, params=None, json=None, timeout=None):
        if url.endswith("variants/22.json"):
            return http_response(422, text='{"errors": "price invalid"}')
        return http_response(200, {})

    mock_session.request.side_effect = respond
    client = _client(shopify_site, mock_session)
    items = [
        UpdateInstruction(11, "A1", 120, 99, 3, inventory_item_id=110),
        UpdateInstruction(22, "B2", 120, 99, 3, inventory_item_id=220),
        UpdateInstruction(33, "C3", 120, 99, 3, inventory_item_id=330),
    ]
    outcome = client.update_products(items)
    assert [i.sku for i in outcome.updated] == ["A1", "C3"]
    assert len(outcome.errors) == 1
    err = outcome.errors[0]
    assert err.identifier == "variant_id: 22"
    assert err.sku == "B2"
    assert "price invalid" in err.message


def test_missing_inventory_item_fails_before_any_write(shopify_site, mock_session):
    client = _client(shopify_site, mock_session)
    outcome = client.update_products([UpdateInstruction(11, "A1", 120, 99, 3)])
    assert outcome.updated == []
    assert "inventory_item_id" in outcome.errors[0].message
    mock_session.request.assert_not_called()


def test_fetch_orders_uses_link_cursor(shopify_site, mock_session, http_response):
    cursor = f"{API}orders.json?page_info=xyz"
    mock_session.request.return_value = http_response(
        200, {"orders": [{"id": 1}]}, headers={"Link": f'<{cursor}>; rel="next"'}
    )
    client = _client(shopify_site, mock_session)
    page = client.fetch_orders()
    assert page.next_cursor == cursor
    client.fetch_orders(page.next_cursor)
    assert mock_session.request.call_args.args == ("GET", cursor)


def test_auth_failure_surfaces_from_fetch(shopify_site, mock_session, http_response):
    mock_session.request.return_value = http_response(401, text="bad token")
    client = _client(shopify_site, mock_session)
    with pytest.raises(RemoteApiError) as info:
        client.fetch_products_by_sku(["A1"])
    assert info.value.error_type == "AUTHENTICATION_FAILED"
