from pathlib import Path
from typing import Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    API_PREFIX: str = "/api/v1"

    # Database
    DB_URL: str = "postgresql://postgres:password@db:5432/tripdb"
    DB_ECHO: bool = False  # Set to True for SQL query logging in development
    DB_CREATE_TABLES: bool = False  # create_all on startup instead of Alembic migrations

    # Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Number of connections to maintain in pool
    DB_MAX_OVERFLOW: int = 20  # Maximum overflow connections beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Timeout in seconds to get connection from pool
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # Identity provider tokens
    JWT_SECRET: str = "change_me"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Route provider (Google Directions web service)
    GOOGLE_MAPS_API_KEY: str = ""
    DIRECTIONS_API_URL: str = "https://maps.googleapis.com/maps/api/directions/json"
    ROUTE_PROVIDER_TIMEOUT_SECONDS: float = 15.0

    # Geocoding
    GEOCODING_ENABLED: bool = True
    GEOCODING_TIMEOUT_SECONDS: float = 5.0

    # Share links
    SHARE_TOKEN_BYTES: int = 12
    SHARE_BASE_URL: Optional[str] = None

    # Itinerary items
    TRANSACTIONAL_ITEM_APPEND: bool = False  # row-locked append, see DESIGN.md

    # Rate Limiting
    ENABLE_RATE_LIMITING: bool = True
    RATE_LIMIT_READ: str = "60/minute"
    RATE_LIMIT_WRITE: str = "30/minute"
    RATE_LIMIT_ROUTE: str = "20/minute"
    RATE_LIMIT_SHARE: str = "10/minute"
    RATE_LIMIT_PUBLIC: str = "120/minute"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # CORS
    ALLOWED_ORIGINS: Union[list, str] = ["http://localhost:3000", "http://localhost:3001"]

    @field_validator('ALLOWED_ORIGINS', mode='before')
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse ALLOWED_ORIGINS from comma-separated string or list"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('SHARE_TOKEN_BYTES')
    @classmethod
    def validate_share_token_bytes(cls, v: int) -> int:
        # below 8 bytes a token stops being unguessable in practice
        if v < 8:
            raise ValueError("SHARE_TOKEN_BYTES must be at least 8")
        return v

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parents[3] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
