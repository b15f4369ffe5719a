"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helpers for accessing cached settings, the
email configuration used for follow-up messages and logging setup.
"""

import logging
from functools import lru_cache
from typing import List

from fastapi_mail import ConnectionConfig
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        SECRET_KEY: Secret key used for JWT signing.
        ALGORITHM: Algorithm used to encode JWT tokens.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        REFRESH_TOKEN_EXPIRE_MINUTES: Refresh token lifetime in minutes.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for rate limiting and user caching.
        HOST: Interface the uvicorn server binds to.
        PORT: Port the uvicorn server listens on.
        CLOUDINARY_URL: Cloudinary connection URL for media uploads.
        MEDIA_FOLDER: Cloudinary folder that receives uploaded media.
        MEDIA_MAX_BYTES: Maximum size of a single uploaded file.
        MEDIA_MAX_FILES: Maximum number of files per upload request.
        MEDIA_ALLOWED_TYPES: Accepted MIME types for media uploads.
        SMTP_FROM_EMAIL: Sender email address for follow-up emails.
        SMTP_USER: SMTP username.
        SMTP_PASSWORD: SMTP password.
        SMTP_PORT: SMTP server port.
        SMTP_HOST: SMTP server host.
        LOG_LEVEL: Root logging level.
        DEFAULT_EMAIL_TEMPLATE: Follow-up email text used until a user saves one.
        DEFAULT_SMS_TEMPLATE: Follow-up SMS text used until a user saves one.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    DATABASE_URL: str = "sqlite:///./trackconn.db"
    SECRET_KEY: str = "dev-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    ALLOWED_ORIGINS: List[str] = ["*"]
    REDIS_URL: str = "redis://localhost:6379"
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    CLOUDINARY_URL: str | None = None
    MEDIA_FOLDER: str = "trackconn_media"
    MEDIA_MAX_BYTES: int = 5 * 1024 * 1024
    MEDIA_MAX_FILES: int = 5
    MEDIA_ALLOWED_TYPES: List[str] = [
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        "image/bmp",
        "image/tiff",
    ]
    SMTP_FROM_EMAIL: str = "noreply@example.com"
    SMTP_USER: str = "user"
    SMTP_PASSWORD: str = "password"
    SMTP_PORT: int = 1025
    SMTP_HOST: str = "localhost"
    LOG_LEVEL: str = "INFO"
    DEFAULT_EMAIL_TEMPLATE: str = (
        "Hi [Name], It was great meeting you at [Event]. I'd love to connect "
        "and discuss [Topic] further. Best regards, [Your Name]"
    )
    DEFAULT_SMS_TEMPLATE: str = (
        "Hi [Name], it's [Your Name] from [Event]. Great meeting you! "
        "Let's connect soon."
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def get_mail_config() -> ConnectionConfig:
    """Create and return email configuration for FastAPI-Mail.

    Returns:
        ConnectionConfig: Configured email connection settings.
    """

    settings = get_settings()
    return ConnectionConfig(
        MAIL_USERNAME=settings.SMTP_USER,
        MAIL_PASSWORD=settings.SMTP_PASSWORD,
        MAIL_FROM=settings.SMTP_FROM_EMAIL,
        MAIL_PORT=settings.SMTP_PORT,
        MAIL_SERVER=settings.SMTP_HOST,
        MAIL_STARTTLS=True,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=True,
    )


def configure_logging() -> None:
    """Configure the root logger from settings."""

    logging.basicConfig(
        level=get_settings().LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
