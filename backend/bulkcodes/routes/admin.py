from __future__ import annotations

from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from itsdangerous import BadSignature, SignatureExpired

from bulkcodes.deps import get_option_store, get_surecart_client, get_transient_cache, require_admin
from bulkcodes.schemas.admin import (
    ApiKeyUpdateRequest,
    CampaignCreateRequest,
    CatalogItem,
    ExportFileResponse,
)
from bulkcodes.security import create_download_token, parse_download_token
from bulkcodes.services import catalog
from bulkcodes.services.batch import CampaignError, run_campaign
from bulkcodes.services.export import CSV_PREFIX, delete_exports, find_export, list_exports
from bulkcodes.services.storage import OptionStore, TransientCache
from bulkcodes.services.surecart import SureCartClient
from bulkcodes.settings import settings

logger = structlog.get_logger(__name__)

router = APIRouter()
protected = [Depends(require_admin)]

_CAMPAIGN_ERROR_STATUS = {
    "COUPON_CREATE_FAILED": 502,
    "EXPORT_OPEN_FAILED": 500,
}


@router.get("/api-key", dependencies=protected)
def get_api_key_status(options: OptionStore = Depends(get_option_store)) -> dict:
    return {"ok": True, "data": {"configured": bool(options.get_api_key())}}


@router.put("/api-key", dependencies=protected)
def save_api_key(
    payload: ApiKeyUpdateRequest,
    options: OptionStore = Depends(get_option_store),
    cache: TransientCache = Depends(get_transient_cache),
) -> dict:
    options.set_api_key(payload.api_key)
    catalog.invalidate(cache)
    return {"ok": True, "data": {"configured": bool(options.get_api_key()), "message": "API key saved."}}


@router.get("/products", dependencies=protected)
def list_products(
    refresh: bool = False,
    client: SureCartClient = Depends(get_surecart_client),
    cache: TransientCache = Depends(get_transient_cache),
) -> dict:
    items = catalog.fetch_products(
        client,
        cache,
        ttl_seconds=settings.PRODUCTS_CACHE_TTL_SECONDS,
        force_refresh=refresh,
    )
    return {"ok": True, "data": [CatalogItem(**item).model_dump() for item in items]}


@router.get("/coupons", dependencies=protected)
def list_coupons(
    refresh: bool = False,
    client: SureCartClient = Depends(get_surecart_client),
    cache: TransientCache = Depends(get_transient_cache),
) -> dict:
    items = catalog.fetch_coupons(
        client,
        cache,
        ttl_seconds=settings.COUPONS_CACHE_TTL_SECONDS,
        force_refresh=refresh,
    )
    return {"ok": True, "data": [CatalogItem(**item).model_dump() for item in items]}


@router.post("/campaigns", dependencies=protected)
def create_campaign(
    payload: CampaignCreateRequest,
    client: SureCartClient = Depends(get_surecart_client),
    cache: TransientCache = Depends(get_transient_cache),
) -> dict:
    try:
        result = run_campaign(payload.to_campaign(), client, export_dir=settings.EXPORT_DIR)
    except CampaignError as exc:
        raise HTTPException(
            status_code=_CAMPAIGN_ERROR_STATUS.get(exc.code, 400),
            detail={"ok": False, "error": {"code": exc.code, "message": exc.message}},
        ) from exc

    # a new coupon changes the coupon listing
    cache.delete(catalog.COUPONS_CACHE_KEY)

    return {
        "ok": True,
        "data": {
            "message": result.message,
            "coupon_id": result.coupon_id,
            "created_count": result.created_count,
            "error_count": result.error_count,
            "files": {kind: _export_response(path).model_dump() for kind, path in result.csv_paths.items()},
        },
    }


@router.get("/exports", dependencies=protected)
def get_exports() -> dict:
    files = [_export_response(path).model_dump() for path in list_exports(settings.EXPORT_DIR)]
    return {"ok": True, "data": files}


@router.delete("/exports", dependencies=protected)
def remove_exports() -> dict:
    deleted = delete_exports(settings.EXPORT_DIR)
    message = f"Deleted {deleted} CSV file{'' if deleted == 1 else 's'}."
    return {"ok": True, "data": {"deleted": deleted, "message": message}}


@router.get("/exports/download/{token}")
def download_export(token: str) -> FileResponse:
    try:
        filename = parse_download_token(token, settings.DOWNLOAD_LINK_MAX_AGE_SECONDS)
    except (BadSignature, SignatureExpired):
        raise HTTPException(
            status_code=404,
            detail={"ok": False, "error": {"code": "NOT_FOUND", "message": "Export not found."}},
        )
    path = find_export(settings.EXPORT_DIR, filename)
    if path is None:
        raise HTTPException(
            status_code=404,
            detail={"ok": False, "error": {"code": "NOT_FOUND", "message": "Export not found."}},
        )
    return FileResponse(path, media_type="text/csv", filename=path.name)


def _export_kind(path: Path) -> str:
    remainder = path.name[len(CSV_PREFIX):]
    return remainder.split("-", 1)[0]


def _export_response(path: Path) -> ExportFileResponse:
    token = create_download_token(path.name)
    return ExportFileResponse(
        name=path.name,
        kind=_export_kind(path),
        size=path.stat().st_size,
        download_url=f"/api/admin/exports/download/{token}",
    )
