"""Application configuration."""

from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",")]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "mayombe-overlay"
    SERVER_PORT: int = 8000
    ROOTPATH: str = ""
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    FRONTEND_HOST: str = "http://localhost:5173"  # admin panel

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    CORS_ALLOW_METHODS: list[str] = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    CORS_ALLOW_HEADERS: list[str] = ["Authorization", "Content-Type"]

    # Overlay store (Redis)
    REDIS_URL: str = "redis://localhost:6379/0"
    OVERLAY_KEY_PREFIX: str = "overlay"

    # Catalog REST API (read-only)
    CATALOG_API_BASE_URL: str = "https://www.api-mayombe.mayombe-app.com/public/api"
    CATALOG_FETCH_TIMEOUT_SEC: float = 15.0
    UPLOADS_BASE_URL: str = "https://www.mayombe-app.com/uploads_admin"
    HTTP_USER_AGENT: str = "Mozilla/5.0 (compatible; MayombeOverlay/1.0)"

    # Default assets used when neither overlay nor catalog provide an image
    DEFAULT_COVER_ASSET: str = "assets/images/2.jpg"
    DEFAULT_LOGO_ASSET: str = "assets/images/2.jpg"

    # Image cache
    IMAGE_CACHE_TTL_DAYS: int = 30
    IMAGE_FETCH_TIMEOUT_SEC: float = 20.0

    # Local persistent store (image cache entries + guest id)
    LOCAL_STORE_PATH: str = "data/local_store.sqlite3"

    # Delivery estimate when coordinates are missing
    DEFAULT_DELIVERY_MIN_MINUTES: int = 20
    DEFAULT_DELIVERY_MAX_MINUTES: int = 30

    @computed_field
    @property
    def image_cache_ttl_ms(self) -> int:
        return self.IMAGE_CACHE_TTL_DAYS * 24 * 60 * 60 * 1000


settings = Settings()
