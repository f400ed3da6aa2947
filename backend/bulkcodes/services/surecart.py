from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.surecart.com"


@dataclass(frozen=True)
class CouponDraft:
    name: str
    duration: str = "once"
    percent_off: int | None = None
    amount_off: int | None = None
    currency: str | None = None
    duration_in_months: int | None = None
    max_redemptions_per_customer: int | None = None
    product_ids: tuple[str, ...] | None = None
    redeem_by: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "duration": self.duration}
        if self.percent_off is not None:
            payload["percent_off"] = self.percent_off
        if self.amount_off is not None:
            payload["amount_off"] = self.amount_off
        if self.currency is not None:
            payload["currency"] = self.currency
        if self.duration_in_months is not None:
            payload["duration_in_months"] = self.duration_in_months
        if self.max_redemptions_per_customer is not None:
            payload["max_redemptions_per_customer"] = self.max_redemptions_per_customer
        if self.product_ids:
            payload["product_ids"] = list(self.product_ids)
        if self.redeem_by is not None:
            payload["redeem_by"] = self.redeem_by
        return payload


@dataclass(frozen=True)
class PromotionDraft:
    coupon_id: str
    code: str
    max_redemptions: int = 1
    active: bool | None = None
    starts_at: int | None = None
    ends_at: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "coupon_id": self.coupon_id,
            "code": self.code,
            "max_redemptions": self.max_redemptions,
        }
        if self.active is not None:
            payload["active"] = self.active
        if self.starts_at is not None:
            payload["starts_at"] = self.starts_at
        if self.ends_at is not None:
            payload["ends_at"] = self.ends_at
        return payload


class SureCartApiError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


def extract_error_message(body: Any) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return "Unknown error"


class SureCartClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout_s: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout_s
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, headers=self._headers(), timeout=self.timeout)

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._http_client:
            return self._http_client.request(method, url, headers=self._headers(), **kwargs)
        with self._client() as client:
            return client.request(method, url, **kwargs)

    def _call(self, method: str, endpoint: str, **kwargs: Any) -> dict:
        try:
            response = self._request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("surecart_request_failed", endpoint=f"{method} {endpoint}", error=str(exc))
            raise SureCartApiError(f"API request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not 200 <= response.status_code < 300:
            message = extract_error_message(body)
            logger.error(
                "surecart_request_error",
                endpoint=f"{method} {endpoint}",
                status_code=response.status_code,
                error=message,
            )
            raise SureCartApiError(
                f"API error ({response.status_code}): {message}",
                status_code=response.status_code,
                body=body,
            )
        if isinstance(body, list):
            return {"data": body}
        return body if isinstance(body, dict) else {}

    def create_coupon(self, draft: CouponDraft) -> dict:
        return self._call("POST", "/v1/coupons", json=draft.to_payload())

    def create_promotion(self, draft: PromotionDraft) -> dict:
        return self._call("POST", "/v1/promotions", json=draft.to_payload())

    def list_products(self, page: int = 1, limit: int = 100) -> dict:
        return self._call("GET", "/v1/products", params={"limit": limit, "page": page})

    def list_coupons(self, page: int = 1, limit: int = 100) -> dict:
        return self._call("GET", "/v1/coupons", params={"limit": limit, "page": page})
