"""
Mintless Claim API - Configuration
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    # Application
    APP_NAME: str = "Mintless Claim API"
    VERSION: str = "1.0.0"
    ENV: str = "development"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    WORKERS: int = 1
    LOG_LEVEL: str = "INFO"

    # Commitment snapshot
    SNAPSHOT_PATH: str = "airdropData.boc"
    SNAPSHOT_VERIFY_ROOT: bool = True

    # Issuing collaborator (jetton minter)
    MINTER_FILE: str = "minter.json"
    SALT_GET_METHOD: str = "get_wallet_state_init_and_salt"
    JETTON_WALLET_CODE_PATH: Optional[str] = None
    WALLET_CODE_AS_LIBRARY: bool = True
    VERIFY_ONCHAIN_ROOT: bool = True
    WALLET_WORKCHAIN: int = 0

    # TON HTTP API
    TONCENTER_URL: str = "https://toncenter.com/api/v2"
    TONCENTER_TESTNET_URL: str = "https://testnet.toncenter.com/api/v2"
    TONCENTER_TESTNET: bool = False
    TONCENTER_API_KEY: Optional[str] = None
    UPSTREAM_REQUEST_TIMEOUT: float = 10.0
    UPSTREAM_SALT_TIMEOUT: float = 15.0
    UPSTREAM_RETRY_COUNT: int = 3
    UPSTREAM_RETRY_DELAY: float = 0.5
    UPSTREAM_RETRY_MAX_DELAY: float = 4.0

    @property
    def toncenter_endpoint(self) -> str:
        return self.TONCENTER_TESTNET_URL if self.TONCENTER_TESTNET else self.TONCENTER_URL

    # Integrity
    ABORT_ON_INTEGRITY_FAILURE: bool = True

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    UPSTREAM_PROBE_INTERVAL_SECONDS: int = 60

    # Metrics
    METRICS_ENABLED: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
