"""
Shared configuration management for the Credit Gateway.
"""

from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External collaborators
    registry_url: str = Field(default="http://localhost:3100")
    ledger_url: str = Field(default="http://localhost:3200")
    http_timeout: float = Field(default=5.0)

    # Asset identifiers are "<prefix>:<hex id>"
    asset_id_prefix: str = Field(default="did:nv")


class ServiceConfig(BaseConfig):
    """Configuration for a service exposing an HTTP surface."""

    service_name: str = "service"
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=4000)


class IntrospectionConfig(ServiceConfig):
    """Settings for the token introspection service."""

    service_name: str = "introspection"

    # Shared with the node issuing tokens; required
    token_secret_phrase: str

    authorization_header: str = Field(default="authorization")
    requested_url_header: str = Field(default="nvm-requested-url")
    decision_timeout_seconds: float = Field(default=5.0, gt=0)


class ReconcilerConfig(BaseConfig):
    """Settings for the usage reconciliation worker."""

    service_name: str = "reconciler"

    # Work queue store
    pg_host: str = Field(default="localhost")
    pg_port: int = Field(default=5432)
    pg_user: str = Field(default="postgres")
    pg_password: str = Field(default="")
    pg_database: str = Field(default="nvm_one")

    max_retries: int = Field(default=3, ge=1)
    sleep_duration_seconds: float = Field(default=5.0, ge=0)

    # Used when the upstream did not report credits consumed
    default_credits_consumed: Optional[int] = Field(default=None, ge=0)

    # Account authorizing debits on the ledger; required
    ledger_account: str

    metrics_port: Optional[int] = Field(default=9464)

    @property
    def postgres_connect_args(self) -> Dict[str, Any]:
        """Connection parameters for asyncpg, passed unescaped as keywords."""
        return {
            "host": self.pg_host,
            "port": self.pg_port,
            "user": self.pg_user,
            "password": self.pg_password,
            "database": self.pg_database,
        }


ConfigT = TypeVar("ConfigT", bound=BaseConfig)


def get_config(config_class: Type[ConfigT], **overrides) -> ConfigT:
    """Load configuration, failing with ConfigurationError on missing settings."""
    try:
        return config_class(**overrides)
    except PydanticValidationError as e:
        missing = [
            ".".join(str(part) for part in error["loc"])
            for error in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid or missing configuration for {config_class.__name__}",
            details={"fields": missing}
        ) from e
