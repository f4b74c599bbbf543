"""
Configuration settings for the presence registry service.
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    """Find the .env file in potential locations."""
    # Check environment variable first
    env_file = os.getenv("ENV_FILE")
    if env_file and os.path.exists(env_file):
        return env_file

    possible_locations = [
        # Repository root (local development)
        os.path.join(Path(__file__).parent.parent.parent.parent.parent, ".env"),
        # Docker container root
        "/app/.env",
        # Current directory
        ".env",
    ]

    for location in possible_locations:
        if os.path.exists(location):
            return location

    return possible_locations[0]


class Settings(BaseSettings):
    """Presence registry configuration settings."""

    # Service information
    PROJECT_NAME: str = "Presence Registry"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"

    # Environment
    ENV: str = Field(
        default="development",
        description="Environment (development, staging, production)"
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    # CORS settings
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
        description="CORS allowed origins"
    )

    # Backing store
    MONGO_URI: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGO_DB_NAME: str = Field(default="presence_db")
    REGISTRY_TABLE_NAME: str = Field(
        default="web_socket_adapter_table",
        min_length=1,
        description="Collection holding connection records and last activity"
    )

    # Expiry horizons
    CONNECTION_TTL_MINUTES: int = Field(
        default=30,
        ge=1,
        description="Grace window after a connection's last activity"
    )
    ACTIVITY_RETENTION_MONTHS: int = Field(
        default=6,
        ge=1,
        description="How long a last-seen timestamp is kept"
    )

    # Security settings
    JWT_SECRET_KEY: SecretStr = Field(
        default=...,
        description="JWT secret key used to verify access tokens"
    )
    JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )

    # Socket.IO settings
    SOCKET_IO_PATH: str = "socket.io"
    SOCKET_IO_PING_TIMEOUT: int = 5
    SOCKET_IO_PING_INTERVAL: int = 25

    @field_validator("ENV")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed_envs = ["development", "staging", "production"]
        if v not in allowed_envs:
            raise ValueError(f"ENV must be one of {allowed_envs}")
        return v

    @field_validator("CORS_ORIGINS")
    @classmethod
    def validate_cors_origins(cls, v: List[str], info: Any) -> List[str]:
        if info.data.get("ENV") == "production":
            if "*" in v:
                raise ValueError(
                    "Wildcard CORS origin not allowed in production")
            if any(not origin.startswith("https://") for origin in v if origin != "null"):
                raise ValueError("Production CORS origins must use HTTPS")
        return v

    @field_validator("JWT_SECRET_KEY")
    @classmethod
    def validate_jwt_secret(cls, v: SecretStr) -> SecretStr:
        if len(v.get_secret_value()) < 32:
            raise ValueError(
                "JWT_SECRET_KEY must be at least 32 characters long")
        return v

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """Create and return a cached Settings instance."""
    return Settings()


def get_socket_io_config(settings: Settings) -> Dict[str, Any]:
    """Get Socket.IO server configuration."""
    return {
        "async_mode": "asgi",
        "cors_allowed_origins": settings.CORS_ORIGINS,
        "ping_timeout": settings.SOCKET_IO_PING_TIMEOUT,
        "ping_interval": settings.SOCKET_IO_PING_INTERVAL,
    }
