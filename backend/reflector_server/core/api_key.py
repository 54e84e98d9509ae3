from __future__ import annotations

import hmac
from fastapi import HTTPException, Request, status
from reflector_server.core.config import settings

HEADER_NAME = 'x-reflector-api-key'
QUERY_PARAM = 'api_key'


def _get_configured_key() -> str | None:
    value = settings.api_key
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _extract_candidate(header_value: str | None, query_value: str | None) -> str | None:
    candidate = header_value or query_value
    if candidate is None:
        return None
    candidate = candidate.strip()
    return candidate or None


def _matches(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode(), provided.encode())


async def require_shared_api_key(request: Request) -> None:
    secret = _get_configured_key()
    if not secret:
        return
    provided = _extract_candidate(request.headers.get(HEADER_NAME), request.query_params.get(QUERY_PARAM))
    if not provided:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Shared API key required')
    if not _matches(secret, provided):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Invalid shared API key')
