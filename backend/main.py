from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from api.error_handling import register_exception_handlers
from api.v1 import auth, users
from core.config import settings
from db.memory import InMemoryUserRepository
from db.mongodb import MongoDatabase, MongoUserRepository
from db.repository import UserRepository
from services.auth_service import AuthService
from utils.email import EmailService
from utils.logging_config import configure_logging, RequestContextMiddleware

# Configure logging with date-based files and TTL retention
logger = configure_logging("nexus")


async def _build_repository() -> UserRepository:
    if not settings.USE_MONGO:
        logger.info("USE_MONGO=false; users are kept in process memory")
        return InMemoryUserRepository()
    database = MongoDatabase(settings.MONGO_URI, settings.MONGO_DB)
    database.connect()
    if await database.init_indexes():
        logger.info("Mongo indexes ensured")
    return MongoUserRepository.from_database(database)


def create_app(
    repository: Optional[UserRepository] = None,
    email_service: Optional[EmailService] = None,
) -> FastAPI:
    """Build the application; repository and email_service override the configured ones."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.users = repository or await _build_repository()
        app.state.mailer = email_service or EmailService(settings)
        app.state.auth_service = AuthService(app.state.users, app.state.mailer)
        logger.info("Application startup complete")
        try:
            yield
        finally:
            await app.state.users.close()
            logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    # Add GZip compression for larger JSON payloads
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # Add logging context middleware to capture user_id and API path
    app.add_middleware(RequestContextMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix=f"{settings.API_V1_STR}/auth", tags=["Authentication"])
    app.include_router(users.router, prefix=f"{settings.API_V1_STR}/users", tags=["Users"])

    @app.get("/")
    async def root():
        return {"message": settings.APP_NAME, "version": settings.VERSION}

    @app.get("/health")
    async def health_check():
        if await app.state.users.ping():
            return {"status": "healthy", "database": "connected"}
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "unavailable"})

    return app


app = create_app()
