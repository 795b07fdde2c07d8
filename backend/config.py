"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./clearcare.db"

    # Fasten Connect credentials (optional - health connections are
    # disabled when either is missing)
    FASTEN_BASE_URL: str = ""
    FASTEN_PUBLIC_ID: str = ""
    FASTEN_PRIVATE_KEY: str = ""
    FASTEN_DEFAULT_ENDPOINT_ID: str = ""
    FASTEN_DEFAULT_BRAND_ID: str = ""
    FASTEN_DEFAULT_PORTAL_ID: str = ""
    FASTEN_HTTP_TIMEOUT_SECONDS: float = 30.0

    # Webhook authentication (unsigned deliveries are rejected unless explicitly allowed)
    FASTEN_WEBHOOK_SECRET: str = ""
    FASTEN_ALLOW_UNSIGNED_WEBHOOKS: bool = False

    # EHI export ingestion
    EHI_INGEST_BATCH_SIZE: int = 80
    EHI_INGEST_TIMEOUT_SECONDS: float = 30.0

    # Frontend (used to build the connect-flow redirect URI)
    FRONTEND_URL: str = "http://localhost:5173"

    @field_validator(
        "FASTEN_BASE_URL",
        "FASTEN_PUBLIC_ID",
        "FASTEN_PRIVATE_KEY",
        "FASTEN_DEFAULT_ENDPOINT_ID",
        "FASTEN_DEFAULT_BRAND_ID",
        "FASTEN_DEFAULT_PORTAL_ID",
        "FASTEN_WEBHOOK_SECRET",
        mode="before",
    )
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Trim stray whitespace copied into ``.env`` files or the keychain."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("EHI_INGEST_BATCH_SIZE")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"EHI_INGEST_BATCH_SIZE must be positive, got {v}")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
