"""
Runtime configuration read from the environment.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from openfga_sdk import ClientConfiguration, OpenFgaClient
from openfga_sdk.credentials import CredentialConfiguration, Credentials


@dataclass
class Settings:
    openfga_api_url: str = "http://localhost:8080"
    openfga_store_id: Optional[str] = None
    openfga_model_id: Optional[str] = None
    openfga_client_id: Optional[str] = None
    openfga_client_secret: Optional[str] = None
    openfga_api_token_issuer: Optional[str] = None
    openfga_api_audience: Optional[str] = None
    session_secret: str = "change-me"
    permission_cache_ttl: int = 60
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openfga_api_url=os.getenv("OPENFGA_API_URL", "http://localhost:8080"),
            openfga_store_id=os.getenv("OPENFGA_STORE_ID") or None,
            openfga_model_id=os.getenv("OPENFGA_MODEL_ID") or None,
            openfga_client_id=os.getenv("OPENFGA_CLIENT_ID") or None,
            openfga_client_secret=os.getenv("OPENFGA_CLIENT_SECRET") or None,
            openfga_api_token_issuer=os.getenv("OPENFGA_API_TOKEN_ISSUER") or None,
            openfga_api_audience=os.getenv("OPENFGA_API_AUDIENCE") or None,
            session_secret=os.getenv("SESSION_SECRET", "change-me"),
            permission_cache_ttl=int(os.getenv("PERMISSION_CACHE_TTL", "60")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)


def build_openfga_client(settings: Settings) -> OpenFgaClient:
    """Create an OpenFGA client from settings."""
    configuration = ClientConfiguration(
        api_url=settings.openfga_api_url,
        store_id=settings.openfga_store_id,
        authorization_model_id=settings.openfga_model_id,
    )

    if settings.openfga_client_id and settings.openfga_client_secret:
        configuration.credentials = Credentials(
            method="client_credentials",
            configuration=CredentialConfiguration(
                client_id=settings.openfga_client_id,
                client_secret=settings.openfga_client_secret,
                api_issuer=settings.openfga_api_token_issuer,
                api_audience=settings.openfga_api_audience,
            ),
        )

    return OpenFgaClient(configuration)
