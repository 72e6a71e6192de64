"""
Environment configuration loader with validation for the ledger service.
"""

import os
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

from ledger.cache.config import CacheConfig

_TRUE_VALUES = ("true", "1", "yes", "on")


class AppConfig(BaseModel):
    """Configuration model for the ledger service with validation."""

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./ledger.db", description="Database connection URL"
    )
    database_echo: bool = Field(default=False, description="Log SQL statements")

    # Valkey Cache Configuration
    valkey_host: str = Field(default="localhost", description="Valkey server host")
    valkey_port: int = Field(
        default=6379, ge=1, le=65535, description="Valkey server port"
    )
    valkey_password: Optional[str] = Field(
        default=None, description="Valkey server password"
    )
    valkey_database: int = Field(
        default=0, ge=0, le=15, description="Valkey database number"
    )
    valkey_max_connections: int = Field(
        default=10, ge=1, description="Maximum Valkey connections"
    )
    valkey_socket_timeout: float = Field(
        default=5.0, gt=0, description="Valkey socket timeout in seconds"
    )
    valkey_socket_connect_timeout: float = Field(
        default=5.0, gt=0, description="Valkey connection timeout in seconds"
    )

    # Response cache behaviour
    cache_enabled: bool = Field(default=True, description="Enable the response cache")
    cache_ttl_seconds: int = Field(
        default=60, ge=1, description="TTL of cached GET responses"
    )
    cache_max_retries: int = Field(
        default=10, ge=1, description="Connection attempts before giving up"
    )
    cache_retry_base_delay: float = Field(
        default=0.1, ge=0, description="First reconnect delay in seconds"
    )
    cache_retry_max_delay: float = Field(
        default=3.0, ge=0, description="Ceiling of the reconnect delay in seconds"
    )

    # Authentication
    jwt_secret: str = Field(
        default="dev-secret-key-change-me", min_length=8, description="JWT signing secret"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(
        default=60 * 24, ge=1, description="Lifetime of issued access tokens"
    )

    # Uploads
    upload_max_bytes: int = Field(
        default=5 * 1024 * 1024, ge=1, description="Largest accepted upload"
    )

    # Service
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("cache_retry_max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """Ensure the backoff ceiling is not below the first delay."""
        base = info.data.get("cache_retry_base_delay")
        if base is not None and v < base:
            raise ValueError(
                "Maximum retry delay must be greater than or equal to the base delay"
            )
        return v

    def cache_config(self) -> CacheConfig:
        """Connection settings for the cache store."""
        return CacheConfig(
            host=self.valkey_host,
            port=self.valkey_port,
            password=self.valkey_password,
            database=self.valkey_database,
            max_connections=self.valkey_max_connections,
            socket_timeout=self.valkey_socket_timeout,
            socket_connect_timeout=self.valkey_socket_connect_timeout,
            default_ttl=self.cache_ttl_seconds,
            max_retries=self.cache_max_retries,
            retry_base_delay=self.cache_retry_base_delay,
            retry_max_delay=self.cache_retry_max_delay,
        )


def _as_bool(value: str) -> bool:
    return value.lower() in _TRUE_VALUES


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Optional path to .env file. If None, looks for .env in current directory.

    Returns:
        AppConfig: Validated configuration object

    Raises:
        ValueError: If configuration is invalid
    """
    if env_file is None:
        env_file = ".env"

    if os.path.exists(env_file):
        load_dotenv(env_file)

    config_data: Dict[str, Any] = {
        "database_url": os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./ledger.db"),
        "database_echo": _as_bool(os.getenv("DATABASE_ECHO", "false")),
        "valkey_host": os.getenv("VALKEY_HOST", "localhost"),
        "valkey_port": int(os.getenv("VALKEY_PORT", "6379")),
        "valkey_password": os.getenv("VALKEY_PASSWORD") or None,
        "valkey_database": int(os.getenv("VALKEY_DATABASE", "0")),
        "valkey_max_connections": int(os.getenv("VALKEY_MAX_CONNECTIONS", "10")),
        "valkey_socket_timeout": float(os.getenv("VALKEY_SOCKET_TIMEOUT", "5")),
        "valkey_socket_connect_timeout": float(
            os.getenv("VALKEY_SOCKET_CONNECT_TIMEOUT", "5")
        ),
        "cache_enabled": _as_bool(os.getenv("CACHE_ENABLED", "true")),
        "cache_ttl_seconds": int(os.getenv("CACHE_TTL_SECONDS", "60")),
        "cache_max_retries": int(os.getenv("CACHE_MAX_RETRIES", "10")),
        "cache_retry_base_delay": float(os.getenv("CACHE_RETRY_BASE_DELAY", "0.1")),
        "cache_retry_max_delay": float(os.getenv("CACHE_RETRY_MAX_DELAY", "3.0")),
        "jwt_secret": os.getenv("JWT_SECRET", "dev-secret-key-change-me"),
        "jwt_algorithm": os.getenv("JWT_ALGORITHM", "HS256"),
        "access_token_expire_minutes": int(
            os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24))
        ),
        "upload_max_bytes": int(os.getenv("UPLOAD_MAX_BYTES", str(5 * 1024 * 1024))),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_json": _as_bool(os.getenv("LOG_JSON", "false")),
        "cors_origins": [
            origin.strip().rstrip("/")
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ],
    }

    try:
        return AppConfig(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


# Global configuration instance, used by the CLI entry points
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance, loading it if necessary.

    Returns:
        AppConfig: The global configuration object
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config
