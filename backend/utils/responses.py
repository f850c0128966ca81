from typing import Any, Optional
from fastapi.responses import JSONResponse
from core.config import settings
from core.security import ACCESS_TOKEN_EXPIRE, REFRESH_TOKEN_EXPIRE
from schemas.user_schema import TokenPair

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def no_store_json(data, status_code: int = 200):
    """Return JSONResponse with no-store caching headers."""
    return JSONResponse(content=data, status_code=status_code, headers=NO_STORE_HEADERS)


def envelope(success: bool, message: str, data: Optional[Any] = None, tokens: Optional[TokenPair] = None, **extra) -> dict:
    body = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    if tokens is not None:
        body["tokens"] = tokens.model_dump(by_alias=True)
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def set_session_cookies(response: JSONResponse, tokens: TokenPair) -> JSONResponse:
    common = {"httponly": True, "secure": settings.COOKIE_SECURE, "samesite": settings.COOKIE_SAMESITE, "path": "/"}
    response.set_cookie(ACCESS_COOKIE, tokens.access_token, max_age=int(ACCESS_TOKEN_EXPIRE.total_seconds()), **common)
    response.set_cookie(REFRESH_COOKIE, tokens.refresh_token, max_age=int(REFRESH_TOKEN_EXPIRE.total_seconds()), **common)
    return response


def clear_session_cookies(response: JSONResponse) -> JSONResponse:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, path="/", secure=settings.COOKIE_SECURE, httponly=True, samesite=settings.COOKIE_SAMESITE)
    return response
