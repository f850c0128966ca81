import logging
import logging.handlers
import contextvars
from pathlib import Path
from typing import Optional

from core.config import settings
from core.security import TokenError, verify_access_token
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

SECURITY_LOGGER = "nexus.security"

user_id_var = contextvars.ContextVar("user_id", default="-")
api_var = contextvars.ContextVar("api", default="-")


def map_log_level(level_name: str) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.user_id = user_id_var.get()
        record.api = api_var.get()
        return True


def _daily_file(log_dir: Path, filename: str, level: int, formatter: logging.Formatter) -> logging.Handler:
    # One file per UTC day, LOG_TTL_DAYS of history kept
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / filename),
        when="midnight",
        backupCount=max(int(settings.LOG_TTL_DAYS), 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def _route(name: Optional[str], handlers: list[logging.Handler], level: int) -> logging.Logger:
    target = logging.getLogger(name)
    for h in list(target.handlers):
        target.removeHandler(h)
    for h in handlers:
        target.addHandler(h)
    target.setLevel(level)
    if name is not None:
        target.propagate = False
    return target


def configure_logging(app_logger_name: Optional[str] = None) -> logging.Logger:
    """Route application, access, error and security logs to rotating files.

    app.log and error.log (WARNING and up) receive the root, application and
    Uvicorn server loggers. access.log receives uvicorn.access only.
    security.log receives the credential audit trail written to SECURITY_LOGGER.
    Everything is echoed to the console.
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    level = map_log_level(settings.LOG_LEVEL)

    formatter = logging.Formatter(
        fmt="%(levelname)s - %(asctime)s - %(user_id)s - %(api)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    console.addFilter(ContextFilter())

    app_sinks = [
        _daily_file(log_dir, "app.log", level, formatter),
        _daily_file(log_dir, "error.log", logging.WARNING, formatter),
        console,
    ]

    _route(None, app_sinks, level)
    app_logger = _route(app_logger_name or "nexus", app_sinks, level)
    for name in ("uvicorn", "uvicorn.error", "fastapi"):
        _route(name, app_sinks, level)
    _route("uvicorn.access", [_daily_file(log_dir, "access.log", level, formatter), console], level)
    _route(SECURITY_LOGGER, [_daily_file(log_dir, "security.log", logging.INFO, formatter), console], logging.INFO)

    return app_logger


def _request_user_id(request: Request) -> str:
    token = request.cookies.get("accessToken")
    if not token:
        scheme, _, credentials = (request.headers.get("authorization") or "").partition(" ")
        if scheme.lower() == "bearer":
            token = credentials.strip()
    if not token:
        return "-"
    try:
        return verify_access_token(token).get("user_id") or "-"
    except TokenError:
        return "-"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every log line emitted while serving a request with its user and route."""

    async def dispatch(self, request: Request, call_next):
        user_token = user_id_var.set(_request_user_id(request))
        api_token = api_var.set(f"{request.method} {request.url.path}")
        try:
            return await call_next(request)
        finally:
            user_id_var.reset(user_token)
            api_var.reset(api_token)
