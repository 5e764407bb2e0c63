from functools import lru_cache
import json

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    raw = value.strip()
    if raw == "":
        return []
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]
    except ValueError:
        pass
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )
    database_url: str = ""

    jwt_secret: str = ""
    jwt_audience: str = "authenticated"
    jwt_ttl_hours: int = 720

    docs_enabled: bool = True
    openapi_enabled: bool = True
    expose_error_details: bool = False
    log_level: str = "INFO"

    # Display ids look like REQ-00001.
    request_id_prefix: str = "REQ"
    request_id_width: int = Field(default=5, ge=1, le=12)

    upload_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    # Served from the API origin, so markup and script types stay out.
    upload_allowed_extensions_raw: str = Field(
        default=".png,.jpg,.jpeg,.gif,.webp,.pdf,.txt,.csv,.log,.zip",
        validation_alias=AliasChoices("UPLOAD_ALLOWED_EXTENSIONS"),
    )

    rate_limit_login_enabled: bool = True
    rate_limit_login_attempts: int = Field(
        default=20,
        validation_alias=AliasChoices("RATE_LIMIT_LOGIN_ATTEMPTS", "RATE_LIMIT_LOGIN_PER_MIN"),
    )
    rate_limit_login_window_seconds: int = Field(default=60, ge=1)

    security_headers_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("SECURITY_HEADERS_ENABLED", "SECURE_HEADERS_ENABLED"),
    )

    cors_allow_origins_raw: str = Field(
        default="",
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS"),
    )
    cors_allow_methods_raw: str = Field(
        default="GET,POST,PUT,DELETE,OPTIONS",
        validation_alias=AliasChoices("CORS_ALLOW_METHODS"),
    )
    cors_allow_headers_raw: str = Field(
        default="Authorization,Content-Type,Accept",
        validation_alias=AliasChoices("CORS_ALLOW_HEADERS"),
    )

    @property
    def cors_allow_origins(self) -> list[str]:
        return _parse_list_value(self.cors_allow_origins_raw)

    @property
    def cors_allow_methods(self) -> list[str]:
        return _parse_list_value(self.cors_allow_methods_raw)

    @property
    def cors_allow_headers(self) -> list[str]:
        return _parse_list_value(self.cors_allow_headers_raw)

    @property
    def upload_allowed_extensions(self) -> set[str]:
        return {
            item.lower() if item.startswith(".") else f".{item.lower()}"
            for item in _parse_list_value(self.upload_allowed_extensions_raw)
        }

    def format_request_id(self, number: int) -> str:
        return f"{self.request_id_prefix}-{number:0{self.request_id_width}d}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
