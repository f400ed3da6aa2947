from __future__ import annotations

from fastapi import Depends, Header, HTTPException
from redis import Redis

from bulkcodes.redis import get_redis_client
from bulkcodes.security import admin_token_matches
from bulkcodes.services.storage import OptionStore, TransientCache
from bulkcodes.services.surecart import SureCartClient
from bulkcodes.settings import settings


ADMIN_TOKEN_HEADER = "X-Admin-Token"


def get_redis() -> Redis:
    return get_redis_client()


def get_option_store(redis_client: Redis = Depends(get_redis)) -> OptionStore:
    return OptionStore(redis_client, default_api_key=settings.SURECART_API_KEY)


def get_transient_cache(redis_client: Redis = Depends(get_redis)) -> TransientCache:
    return TransientCache(redis_client)


def get_surecart_client(options: OptionStore = Depends(get_option_store)) -> SureCartClient:
    return SureCartClient(
        options.get_api_key(),
        settings.SURECART_API_BASE_URL,
        timeout_s=settings.SURECART_TIMEOUT_SECONDS,
    )


def require_admin(
    x_admin_token: str | None = Header(default=None, alias=ADMIN_TOKEN_HEADER),
) -> None:
    if not admin_token_matches(x_admin_token):
        raise HTTPException(
            status_code=401,
            detail={"ok": False, "error": {"code": "UNAUTHENTICATED", "message": "Admin token required."}},
        )
