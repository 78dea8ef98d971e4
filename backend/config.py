"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential

VALID_PROVIDERS = ("EnableBanking", "Plaid")


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
    DATABASE_URL: str = "sqlite:///./open_banking.db"

    # Which aggregator handles bank linking
    OPEN_BANKING_PROVIDER: str = "EnableBanking"

    # Linking flow
    OPEN_BANKING_CALLBACK_URL: str = ""  # derived from the request when empty
    FRONTEND_URL: str = "http://localhost:5173"
    FRONTEND_CALLBACK_PATH: str = "/bank-callback"
    OPEN_BANKING_STATE_TTL_MINUTES: int = 10
    OPEN_BANKING_CONNECTION_DAYS: int = 89
    OPEN_BANKING_CONSENT_FALLBACK: bool = True

    # Enable Banking credentials (application id + RSA private key)
    ENABLE_BANKING_APPLICATION_ID: str = ""
    ENABLE_BANKING_PRIVATE_KEY: str = ""
    ENABLE_BANKING_PRIVATE_KEY_PATH: str = ""
    ENABLE_BANKING_BASE_URL: str = "https://api.enablebanking.com"
    ENABLE_BANKING_TIMEOUT_SECONDS: float = 30.0

    # Plaid credentials (optional - alternative aggregator)
    PLAID_CLIENT_ID: str = ""
    PLAID_SECRET: str = ""
    PLAID_ENVIRONMENT: str = "sandbox"
    PLAID_REDIRECT_URI: str = ""  # OAuth redirect registered with Plaid
    PLAID_LINK_PAGE_URL: str = ""  # frontend page hosting Plaid Link; FRONTEND_URL + "/plaid-link" when empty

    # Bearer tokens are issued by the external identity service
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_AUDIENCE: str = ""

    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    @field_validator("ENABLE_BANKING_PRIVATE_KEY", mode="before")
    @classmethod
    def normalize_pem_newlines(cls, v: str) -> str:
        """Convert literal ``\\n`` sequences to real newlines in PEM secrets.

        When set via shell ``export``, ``\\n`` stays as a literal two-char
        sequence. python-dotenv already converts ``\\n`` inside double-quoted
        ``.env`` values, so this handles the shell-export case.
        """
        if isinstance(v, str) and "\\n" in v:
            v = v.replace("\\n", "\n")
        return v

    @field_validator("OPEN_BANKING_PROVIDER", mode="before")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Accept provider names case-insensitively and return the canonical spelling."""
        for name in VALID_PROVIDERS:
            if isinstance(v, str) and v.lower() == name.lower():
                return name
        raise ValueError(f"OPEN_BANKING_PROVIDER must be one of {VALID_PROVIDERS}, got {v!r}")

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
