from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from bulkcodes.deps import get_redis, get_surecart_client
from bulkcodes.main import app
from bulkcodes.services.surecart import SureCartClient
from bulkcodes.settings import settings


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def set(self, key: str, value: str) -> None:
        self.store[key] = value

    def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, key: str) -> None:
        self.store.pop(key, None)
        self.ttls.pop(key, None)


class FakeSureCart:
    """Records calls and answers like the SureCart API."""

    def __init__(self, *, fail_codes: Callable[[int], bool] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.promotion_calls = 0
        self.coupon_status = 200
        self.fail_promotion = fail_codes or (lambda index: False)
        self.products: list[dict] = []

    def payloads(self, path: str) -> list[dict]:
        return [
            json.loads(request.content.decode("utf-8"))
            for request in self.requests
            if request.url.path == path and request.method == "POST"
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/coupons" and request.method == "POST":
            if self.coupon_status >= 400:
                return httpx.Response(self.coupon_status, json={"error": {"message": "Coupon rejected"}})
            return httpx.Response(201, json={"id": "coup_1", "object": "coupon"})
        if path == "/v1/promotions":
            index = self.promotion_calls
            self.promotion_calls += 1
            if self.fail_promotion(index):
                return httpx.Response(422, json={"message": "Code has already been taken"})
            return httpx.Response(201, json={"id": f"promo_{index + 1}", "object": "promotion"})
        if path in ("/v1/products", "/v1/coupons"):
            page = int(request.url.params.get("page", "1"))
            limit = int(request.url.params.get("limit", "100"))
            chunk = self.products[(page - 1) * limit : page * limit]
            return httpx.Response(
                200,
                json={"data": chunk, "pagination": {"count": len(self.products), "limit": limit, "page": page}},
            )
        return httpx.Response(404, json={"message": "Not found"})

    def client(self, api_key: str = "sk_test") -> SureCartClient:
        http_client = httpx.Client(base_url="https://api.surecart.test", transport=httpx.MockTransport(self.handler))
        return SureCartClient(api_key, "https://api.surecart.test", http_client=http_client)


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def surecart() -> FakeSureCart:
    return FakeSureCart()


@pytest.fixture()
def export_dir(tmp_path, monkeypatch):
    target = tmp_path / "exports"
    monkeypatch.setattr(settings, "EXPORT_DIR", str(target))
    return target


@pytest.fixture()
def client(fake_redis, surecart, export_dir):
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_surecart_client] = lambda: surecart.client()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_redis, None)
    app.dependency_overrides.pop(get_surecart_client, None)
