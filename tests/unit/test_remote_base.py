from __future__ import annotations

import pytest
import requests

from stocksync.models.records import CanonicalStockRecord
from stocksync.remote import (
    AuthenticationFailed,
    PermissionDenied,
    RateLimiter,
    RateLimitExceeded,
    RemoteApiError,
    ShopifyClient,
    WooCommerceClient,
    build_client,
    prices_equal,
)


def _record(regular=120, sale=99, stock=3) -> CanonicalStockRecord:
    return CanonicalStockRecord("A1", regular, sale, stock, 110, 70)


@pytest.mark.parametrize(
    "remote, new, expected",
    [
        ("120", 120, True),
        ("120.00", 120, True),
        ("120.50", 121, False),
        ("120.50", 120, False),
        ("", 0, True),
        (None, 0, True),
        (None, 5, False),
        ("n/a", 0, False),
        (" 99 ", 99, True),
    ],
)
def test_prices_equal(remote, new, expected):
    assert prices_equal(remote, new) is expected


def test_rate_limiter_spaces_consecutive_calls():
    now = [100.0]
    slept: list[float] = []

    def sleep(seconds: float) -> None:
        slept.append(seconds)
        now[0] += seconds

    limiter = RateLimiter(0.5, clock=lambda: now[0], sleep=sleep)
    limiter.wait()
    now[0] += 0.2
    limiter.wait()
    now[0] += 1.0
    limiter.wait()
    assert slept == [pytest.approx(0.3)]


def test_diff_is_empty_for_equal_values(fake_client, remote_product):
    client = fake_client()
    remote = remote_product("A1", regular="120.00", sale="99", stock=3)
    assert client.diff(_record(), remote) == {}


def test_diff_reports_old_and_new_values(fake_client, remote_product):
    client = fake_client()
    remote = remote_product("A1", regular="100", sale="99.00", stock=None)
    changes = client.diff(_record(), remote)
    assert set(changes) == {"regular_price", "stock_quantity"}
    assert changes["regular_price"].old == "100"
    assert changes["regular_price"].new == "120"
    assert changes["stock_quantity"].old is None
    assert changes["stock_quantity"].new == 3


def test_build_instruction_carries_new_values_and_remote_ids(fake_client, remote_product):
    client = fake_client()
    remote = remote_product("A1", remote_id=55, inventory_item_id=9)
    inst = client.build_instruction(_record(), remote)
    assert (inst.remote_id, inst.sku, inst.regular_price, inst.sale_price, inst.stock_quantity) == (55, "A1", 120, 99, 3)
    assert inst.inventory_item_id == 9


@pytest.mark.parametrize(
    "status, exc_type",
    [
        (429, RateLimitExceeded),
        (401, AuthenticationFailed),
        (403, PermissionDenied),
        (500, RemoteApiError),
        (404, RemoteApiError),
    ],
)
def test_http_errors_are_classified(woo_site, mock_session, http_response, status, exc_type):
    mock_session.request.return_value = http_response(status, text="nope")
    client = WooCommerceClient(woo_site, session=mock_session)
    with pytest.raises(exc_type) as info:
        client.test_connection()
    assert info.value.status == status
    assert info.value.body == "nope"
    assert type(info.value) is exc_type


def test_transport_errors_become_remote_api_error(woo_site, mock_session):
    mock_session.request.side_effect = requests.ConnectionError("dns failure")
    client = WooCommerceClient(woo_site, session=mock_session)
    with pytest.raises(RemoteApiError) as info:
        client.test_connection()
    assert info.value.status is None
    assert "dns failure" in str(info.value)


def test_non_json_body_raises_remote_api_error(woo_site, mock_session, http_response):
    mock_session.request.return_value = http_response(200, text="<html>maintenance</html>")
    client = WooCommerceClient(woo_site, session=mock_session)
    with pytest.raises(RemoteApiError, match="non-JSON"):
        client.test_connection()


def test_build_client_dispatches_on_platform(woo_site, shopify_site, mock_session):
    assert isinstance(build_client(woo_site, session=mock_session), WooCommerceClient)
    assert isinstance(build_client(shopify_site, session=mock_session), ShopifyClient)
