from __future__ import annotations

import hmac

from itsdangerous import URLSafeTimedSerializer

from bulkcodes.settings import settings


def get_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.SECRET_KEY, salt="export-download")


def create_download_token(filename: str) -> str:
    serializer = get_serializer()
    return serializer.dumps({"file": filename})


def parse_download_token(token: str, max_age_seconds: int) -> str:
    serializer = get_serializer()
    payload = serializer.loads(token, max_age=max_age_seconds)
    return str(payload.get("file") or "")


def admin_token_matches(provided: str | None) -> bool:
    if not settings.ADMIN_TOKEN:
        return True
    return hmac.compare_digest((provided or "").encode("utf-8"), settings.ADMIN_TOKEN.encode("utf-8"))
