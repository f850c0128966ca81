from pydantic import model_validator
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "Nexus API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_STR: str = "/api/v1"

    # Token secrets (one per token purpose)
    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    PASSWORD_RESET_SECRET: str
    ALGORITHM: str = "HS256"
    BCRYPT_ROUNDS: int = 12

    # Cookies
    COOKIE_SECURE: bool = True
    COOKIE_SAMESITE: str = "lax"

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Frontend base URL used in e-mail links
    CLIENT_URL: str = "http://localhost:5173"

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7

    # SMTP / Email settings
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: str = "Nexus"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 15
    SMTP_DEBUG: bool = False

    # MongoDB; with USE_MONGO=false users live in process memory
    USE_MONGO: bool = True
    MONGO_URI: Optional[str] = None
    MONGO_DB: str = "nexus"

    @model_validator(mode="after")
    def check_required(self):
        for name in ("JWT_SECRET", "JWT_REFRESH_SECRET", "PASSWORD_RESET_SECRET"):
            if not getattr(self, name):
                raise ValueError(f"{name} environment variable is required")
        if len({self.JWT_SECRET, self.JWT_REFRESH_SECRET, self.PASSWORD_RESET_SECRET}) != 3:
            raise ValueError("JWT_SECRET, JWT_REFRESH_SECRET and PASSWORD_RESET_SECRET must all differ")
        if self.USE_MONGO and not self.MONGO_URI:
            raise ValueError("MONGO_URI environment variable is required when USE_MONGO is enabled")
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

# Create settings instance
settings = Settings()
