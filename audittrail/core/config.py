from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Audit Trail Service"
    DEBUG: bool = False
    ENV: str = "production"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://audit_user:change_me@db:5432/audit_db"
    DATABASE_URL_SYNC: str = "postgresql://audit_user:change_me@db:5432/audit_db"

    # Security
    SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS string into a list of origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Audit trail
    # Global switch: when False, intercepted operations run unobserved
    AUDIT_LOGGING_ENABLED: bool = True
    # Strings longer than this are truncated inside old/new value snapshots
    AUDIT_MAX_STRING_LENGTH: int = 1000
    # Honor X-Forwarded-For / X-Real-IP when resolving the client IP.
    # Disable when the service is not behind a trusted reverse proxy.
    AUDIT_TRUST_PROXY_HEADERS: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
