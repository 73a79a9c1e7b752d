"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "bridge"
    postgres_password: str = "bridge_dev_password"
    postgres_db: str = "bridge"
    postgres_port: int = 5432

    # Redis (Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # API
    environment: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    admin_api_key: Optional[str] = None  # Required in non-dev

    # Logging
    log_level: str = "INFO"

    # Wallet provider (developer-controlled wallets)
    provider_base_url: str = "https://api.circle.com"
    provider_api_key: Optional[str] = None  # Required in non-dev
    provider_entity_secret: Optional[str] = None  # 32-byte hex, required in non-dev
    provider_fee_level: str = "MEDIUM"
    notifications_public_key_ttl_seconds: int = 3600

    # Bridge attestation service and Gateway API
    iris_base_url: str = "https://iris-api-sandbox.circle.com"
    gateway_base_url: str = "https://gateway-api-testnet.circle.com"
    request_timeout_seconds: float = 10.0

    # Polling
    attestation_poll_interval_seconds: float = 5.0  # webhook path, unbounded
    gateway_poll_interval_seconds: float = 3.0  # client path
    gateway_max_polls: int = 60
    provider_poll_interval_seconds: float = 2.0
    provider_max_polls: int = 90

    # Burn completion: "worker" enqueues to Celery, "inline" runs in the request
    burn_completion_mode: str = "worker"

    # Chain RPC endpoints (native balance reads)
    eth_sepolia_rpc_url: str = "https://ethereum-sepolia-rpc.publicnode.com"
    avax_fuji_rpc_url: str = "https://api.avax-test.network/ext/bc/C/rpc"
    base_sepolia_rpc_url: str = "https://sepolia.base.org"
    arc_testnet_rpc_url: str = "https://rpc.testnet.arc.network"

    # Platform bootstrap
    admin_wallet_label: str = "Primary wallet"
    admin_wallet_blockchain: str = "ARC-TESTNET"
    bootstrap_on_startup: bool = False

    # User wallet provisioning (SCA and EOA addresses are the same on every EVM chain)
    user_wallet_blockchain: str = "ARC-TESTNET"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    def rpc_url_for(self, chain_id: int) -> str:
        """Return the RPC endpoint configured for a chain id."""
        from bridge_api.chains import ChainId

        urls = {
            ChainId.ETH_SEPOLIA: self.eth_sepolia_rpc_url,
            ChainId.AVAX_FUJI: self.avax_fuji_rpc_url,
            ChainId.BASE_SEPOLIA: self.base_sepolia_rpc_url,
            ChainId.ARC_TESTNET: self.arc_testnet_rpc_url,
        }
        return urls[ChainId(chain_id)]

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if not self.provider_api_key or not self.provider_entity_secret:
                raise ValueError(
                    "PROVIDER_API_KEY and PROVIDER_ENTITY_SECRET are required outside development."
                )
            if not self.admin_api_key:
                raise ValueError("ADMIN_API_KEY is required outside development.")
            if self.burn_completion_mode != "worker":
                raise ValueError(
                    "BURN_COMPLETION_MODE=inline is not allowed in production. "
                    "Use BURN_COMPLETION_MODE=worker."
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
