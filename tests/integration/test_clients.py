"""Collaborator HTTP clients and the Redis risk cache"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest
import redis

from storefront_gateway.domain.exceptions import CollaboratorError
from storefront_gateway.domain.models import RiskAssessment, RiskTier
from storefront_gateway.infrastructure.cache.risk_cache import RiskAssessmentCache
from storefront_gateway.infrastructure.clients.catalog import CatalogClient
from storefront_gateway.infrastructure.clients.identity import IdentityClient


def _client(cls, handler):
    return cls(base_url="http://collaborator", http_client=httpx.Client(transport=httpx.MockTransport(handler)))


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr("storefront_gateway.infrastructure.clients.base.time.sleep", lambda seconds: None)


def test_catalog_parses_product():
    def handler(request):
        assert request.url.path == "/products/prod_1"
        return httpx.Response(
            200, json={"id": "prod_1", "name": "Premium Account", "price": "59.90", "available": True}
        )

    listing = _client(CatalogClient, handler).get_product("prod_1")

    assert listing.price == Decimal("59.90")
    assert listing.available is True
    assert listing.sold is False


def test_catalog_missing_product_is_none():
    client = _client(CatalogClient, lambda request: httpx.Response(404, json={"detail": "not found"}))

    assert client.get_product("nope") is None


def test_catalog_retries_server_errors_then_gives_up():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    with pytest.raises(CollaboratorError):
        _client(CatalogClient, handler).get_product("prod_1")

    assert len(calls) == 3


def test_catalog_recovers_after_transient_failure():
    responses = iter(
        [
            httpx.Response(500),
            httpx.Response(200, json={"id": "prod_1", "name": "Account", "price": 10, "available": False}),
        ]
    )

    listing = _client(CatalogClient, lambda request: next(responses)).get_product("prod_1")

    assert listing.available is False
    assert listing.price == Decimal("10")


def test_catalog_client_errors_fail_fast():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400)

    with pytest.raises(CollaboratorError):
        _client(CatalogClient, handler).get_product("prod_1")

    assert len(calls) == 1


def test_catalog_malformed_product():
    client = _client(CatalogClient, lambda request: httpx.Response(200, json={"id": "prod_1"}))

    with pytest.raises(CollaboratorError):
        client.get_product("prod_1")


def test_identity_profile_and_history():
    def handler(request):
        if request.url.path == "/users/buyer_1":
            return httpx.Response(
                200, json={"created_at": "2025-01-15T12:00:00Z", "email": "buyer@example.com", "is_blocked": False}
            )
        if request.url.path == "/users/buyer_1/history":
            assert request.url.params["limit"] == "100"
            return httpx.Response(
                200,
                json={"activities": [{"action": "LOGIN", "timestamp": "2026-01-14T09:30:00Z", "data": {"ip_address": "10.0.0.1"}}]},
            )
        return httpx.Response(404)

    client = _client(IdentityClient, handler)

    profile = client.get_user_profile("buyer_1")
    assert profile.created_at == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
    assert profile.email == "buyer@example.com"

    [activity] = client.get_user_history("buyer_1")
    assert activity.action == "LOGIN"
    assert activity.data["ip_address"] == "10.0.0.1"

    assert client.get_user_profile("ghost") is None
    assert client.get_purchase_history("ghost") == []


def test_identity_purchase_history():
    payload = {"purchases": [{"product_id": 7, "amount": "120.50", "method": "PIX", "date": "2026-01-01T00:00:00Z"}]}
    client = _client(IdentityClient, lambda request: httpx.Response(200, json=payload))

    [purchase] = client.get_purchase_history("buyer_1")

    assert purchase.product_id == "7"
    assert purchase.amount == Decimal("120.50")


def test_identity_record_activity_posts_once():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(201)

    _client(IdentityClient, handler).record_activity("buyer_1", "PAYMENT_INITIATED", {"payment_id": "pay_1"})

    assert seen == [("POST", "/users/buyer_1/activities", {"action": "PAYMENT_INITIATED", "data": {"payment_id": "pay_1"}})]


def test_identity_block_failure_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502)

    with pytest.raises(CollaboratorError):
        _client(IdentityClient, handler).block_user("buyer_1", "fraud:chargeback")

    assert len(calls) == 1


def _assessment():
    return RiskAssessment(
        risk=RiskTier.HIGH,
        score=75,
        factors=["very_new_account", "blocked_account"],
        computed_at=datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc),
    )


def test_risk_cache_round_trip_with_ttl():
    redis_client = MagicMock()
    cache = RiskAssessmentCache(redis_client, ttl_seconds=600)

    cache.set("buyer_1", _assessment())

    key, payload = redis_client.set.call_args.args
    assert key == "risk:assessment:buyer_1"
    assert redis_client.set.call_args.kwargs == {"ex": 600}

    redis_client.get.return_value = payload
    assert cache.get("buyer_1") == _assessment()


def test_risk_cache_degrades_on_redis_errors():
    redis_client = MagicMock()
    redis_client.get.side_effect = redis.ConnectionError("down")
    redis_client.set.side_effect = redis.ConnectionError("down")
    redis_client.delete.side_effect = redis.ConnectionError("down")
    cache = RiskAssessmentCache(redis_client, ttl_seconds=600)

    assert cache.get("buyer_1") is None
    cache.set("buyer_1", _assessment())
    cache.invalidate("buyer_1")


def test_risk_cache_discards_malformed_entries():
    redis_client = MagicMock()
    redis_client.get.return_value = '{"risk": "EXTREME"}'

    assert RiskAssessmentCache(redis_client, ttl_seconds=600).get("buyer_1") is None
