from __future__ import annotations

import secrets

from fastapi import HTTPException, Request

TOKEN_COOKIE = "posefx_token"
TOKEN_HEADER = "x-access-token"


def resolve_token_from_request(request: Request) -> str:
    """First non-empty token from the query string, cookie, then header."""
    for candidate in (
        request.query_params.get("token"),
        request.cookies.get(TOKEN_COOKIE),
        request.headers.get(TOKEN_HEADER),
    ):
        if candidate:
            return candidate
    return ""


def require_http_token(request: Request, expected_token: str) -> str:
    token = resolve_token_from_request(request)
    if not expected_token:
        return token
    if secrets.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        return token
    raise HTTPException(status_code=401, detail="invalid token")
