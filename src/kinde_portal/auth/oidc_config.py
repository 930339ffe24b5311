"""Kinde endpoint layout derived from the configured business domain."""

from dataclasses import dataclass

from kinde_portal.config import Settings


@dataclass(frozen=True)
class ProviderEndpoints:
    domain: str

    @property
    def issuer(self) -> str:
        return self.domain

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.domain}/oauth2/auth"

    @property
    def token_endpoint(self) -> str:
        return f"{self.domain}/oauth2/token"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.domain}/oauth2/v2/user_profile"

    @property
    def logout_endpoint(self) -> str:
        return f"{self.domain}/logout"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderEndpoints":
        return cls(domain=settings.domain)
