"""Application configuration using pydantic-settings.

Defaults mirror the node configuration the bridge is deployed next to:
API on 0.0.0.0:30731, chain id 27.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from htlcbridge.errors import InvalidIdentifierError
from htlcbridge.utils.identifiers import to_address


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/htlcbridge.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=30731, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Log level when debug is off")

    # ======================
    # Admin
    # ======================
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")

    # ======================
    # Bridge
    # ======================
    bridge_address: str = Field(
        default="0x" + "b1" * 20,
        description="The bridge's own account on the token ledger",
    )
    chain_id: int = Field(default=27, description="Chain id of the host ledger")
    operation_lock_timeout: Optional[float] = Field(
        default=30.0, description="Seconds to wait for the operation lock (None = forever)"
    )

    # ======================
    # Block height
    # ======================
    height_source: str = Field(
        default="manual", description="Where block height comes from: manual or rpc"
    )
    initial_height: int = Field(default=0, ge=0, description="Starting height for manual mode")
    rpc_url: str = Field(default="http://127.0.0.1:8545", description="JSON-RPC endpoint")
    rpc_timeout: float = Field(default=10.0, description="JSON-RPC request timeout in seconds")

    @field_validator("bridge_address")
    @classmethod
    def validate_bridge_address(cls, v: str) -> str:
        """Reject malformed bridge addresses at startup."""
        try:
            to_address(v)
        except InvalidIdentifierError as e:
            raise ValueError(str(e))
        return v

    @field_validator("height_source")
    @classmethod
    def validate_height_source(cls, v: str) -> str:
        """Normalize and check the height source name."""
        v = v.lower().strip()
        if v not in ("manual", "rpc"):
            raise ValueError(f"Unsupported height source: {v}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def bridge_account(self) -> bytes:
        """The bridge address as raw bytes."""
        return to_address(self.bridge_address)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "admin_token": "***" if self.admin_token else "(not set)",
            "bridge_address": self.bridge_address,
            "chain_id": self.chain_id,
            "height": {
                "source": self.height_source,
                "rpc_url": self.rpc_url if self.height_source == "rpc" else None,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
