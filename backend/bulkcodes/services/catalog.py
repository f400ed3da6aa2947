from __future__ import annotations

from typing import Any, Callable

import structlog

from bulkcodes.services.storage import TransientCache
from bulkcodes.services.surecart import SureCartApiError, SureCartClient

logger = structlog.get_logger(__name__)

PRODUCTS_CACHE_KEY = "products_v1"
COUPONS_CACHE_KEY = "coupons_v1"
PAGE_LIMIT = 100


def _summarize(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": item.get("id") or "",
        "name": item.get("name") or "(no name)",
        "archived": bool(item.get("archived")),
    }


def collect_pages(
    fetch_page: Callable[[int, int], dict],
    *,
    limit: int = PAGE_LIMIT,
    resource: str = "items",
) -> list[dict[str, Any]]:
    """Walk a paginated listing until the remote side reports the last page.

    With a ``pagination`` block the walk stops once ``count`` is covered by
    ``limit * page``; without one a short page ends it. A remote error stops
    the walk and keeps what was already collected.
    """
    items: list[dict[str, Any]] = []
    page = 1
    while True:
        try:
            response = fetch_page(page, limit)
        except SureCartApiError as exc:
            logger.warning(
                "catalog_page_failed",
                resource=resource,
                page=page,
                status_code=exc.status_code,
                error=exc.message,
            )
            break

        data = response.get("data") or []
        if not data:
            break
        items.extend(_summarize(item) for item in data if isinstance(item, dict))

        pagination = response.get("pagination")
        if isinstance(pagination, dict):
            total = int(pagination.get("count") or 0)
            page_limit = int(pagination.get("limit") or limit)
            current = int(pagination.get("page") or page)
            if total <= page_limit * current:
                break
        elif len(data) < limit:
            break
        page += 1
    return items


def _cached_listing(
    client: SureCartClient | None,
    cache: TransientCache,
    *,
    cache_key: str,
    ttl_seconds: int,
    force_refresh: bool,
    fetch_page_name: str,
) -> list[dict[str, Any]]:
    if not force_refresh:
        cached = cache.get(cache_key)
        if isinstance(cached, list):
            return cached

    if client is None or not client.api_key:
        return []

    items = collect_pages(getattr(client, fetch_page_name), resource=cache_key)
    cache.set(cache_key, items, ttl_seconds)
    return items


def fetch_products(
    client: SureCartClient | None,
    cache: TransientCache,
    *,
    ttl_seconds: int = 60 * 15,
    force_refresh: bool = False,
) -> list[dict[str, Any]]:
    return _cached_listing(
        client,
        cache,
        cache_key=PRODUCTS_CACHE_KEY,
        ttl_seconds=ttl_seconds,
        force_refresh=force_refresh,
        fetch_page_name="list_products",
    )


def fetch_coupons(
    client: SureCartClient | None,
    cache: TransientCache,
    *,
    ttl_seconds: int = 60 * 10,
    force_refresh: bool = False,
) -> list[dict[str, Any]]:
    return _cached_listing(
        client,
        cache,
        cache_key=COUPONS_CACHE_KEY,
        ttl_seconds=ttl_seconds,
        force_refresh=force_refresh,
        fetch_page_name="list_coupons",
    )


def invalidate(cache: TransientCache) -> None:
    cache.delete(PRODUCTS_CACHE_KEY)
    cache.delete(COUPONS_CACHE_KEY)
