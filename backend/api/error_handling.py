import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from core.errors import AuthError, ErrorKind
from utils.responses import NO_STORE_HEADERS, envelope

logger = logging.getLogger(__name__)

# The one place an error kind becomes an HTTP status
STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}

# Unauthorized because the account is in the wrong state, not because of bad credentials
STATUS_BY_CODE = {
    "EMAIL_VERIFICATION_REQUIRED": 403,
}


def status_for(exc: AuthError) -> int:
    return STATUS_BY_CODE.get(exc.code, STATUS_BY_KIND[exc.kind])


def error_response(exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=status_for(exc),
        content=envelope(False, exc.message, code=exc.code),
        headers=NO_STORE_HEADERS,
    )


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Validation failed")
    return f"{field}: {message}" if field else message


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        status_code = status_for(exc)
        log_fn = logger.error if status_code >= 500 else logger.info
        log_fn(f"{request.method} {request.url.path} -> {status_code} {exc.kind.value}: {exc.message}")
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        message = _first_validation_message(exc)
        logger.info(f"{request.method} {request.url.path} -> 400 validation_error: {message}")
        return JSONResponse(status_code=400, content=envelope(False, message), headers=NO_STORE_HEADERS)

    # Unknown routes, wrong methods and other framework errors keep the envelope
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
        headers = {**NO_STORE_HEADERS, **(exc.headers or {})}
        return JSONResponse(status_code=exc.status_code, content=envelope(False, str(exc.detail)), headers=headers)

    # Global exception handler to ensure 500s for unexpected errors
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error at {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content=envelope(False, "Internal server error"), headers=NO_STORE_HEADERS)
