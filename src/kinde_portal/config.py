"""Configuration management for the Kinde portal."""

import logging

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kinde_portal.exceptions import ConfigInvalidError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "domain",
    "client_id",
    "client_secret",
    "redirect_url",
    "post_logout_redirect_url",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KINDE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    # Kinde application
    domain: str = Field(..., description="Kinde business domain, e.g. https://acme.kinde.com")
    client_id: str = Field(..., description="Kinde application client ID")
    client_secret: str = Field(..., description="Kinde application client secret")
    redirect_url: str = Field(..., description="Callback URL registered with Kinde")
    post_logout_redirect_url: str = Field(..., description="Where Kinde sends users after logout")
    scopes: str = Field(default="openid profile email offline")

    http_timeout_seconds: float = Field(default=10.0, gt=0)

    # Server Configuration
    server_host: str = Field(default="127.0.0.1")
    server_port: int = Field(default=8000)
    server_env: str = Field(default="development")

    # Session Configuration
    session_cookie_name: str = Field(default="kinde_session")
    session_expire_minutes: int = Field(default=120, gt=0)

    # Logging
    log_level: str = Field(default="INFO")

    @field_validator(*REQUIRED_FIELDS)
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("domain")
    @classmethod
    def normalise_domain(cls, v: str) -> str:
        if "://" not in v:
            v = f"https://{v}"
        return v.rstrip("/")

    @field_validator("scopes", mode="before")
    @classmethod
    def parse_scopes(cls, v: str | list[str]) -> str:
        if isinstance(v, str):
            v = v.replace(",", " ").split()
        # Ordered set: keep first occurrence
        return " ".join(dict.fromkeys(scope.strip() for scope in v if scope.strip()))

    @property
    def scope_list(self) -> list[str]:
        return self.scopes.split()

    @property
    def is_production(self) -> bool:
        return self.server_env.lower() == "production"

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_expire_minutes * 60


def load_settings(**overrides) -> Settings:
    """
    Load and validate settings once at startup.

    Raises ConfigInvalidError naming every missing or blank required
    variable. Callers treat it as fatal.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing = []
        problems = []
        for err in e.errors():
            field = str(err["loc"][0]) if err["loc"] else "?"
            if field in REQUIRED_FIELDS:
                missing.append(f"KINDE_{field.upper()}")
            else:
                problems.append(f"KINDE_{field.upper()}: {err['msg']}")
        logger.error(f"Invalid Kinde configuration: missing={missing} problems={problems}")
        raise ConfigInvalidError(missing=missing, problems=problems) from e
