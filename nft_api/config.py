from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from nft_api.common.errors import ConfigurationError

REQUIRED_SETTINGS = ("COLLECTION_ADDRESS", "WALLET_PRIVATE_KEY")


class Settings(BaseSettings):
    """Application settings derived from environment variables."""

    # Application settings
    APP_NAME: str = "Solana NFT Mint API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field("development", validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"))
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Solana settings
    SOLANA_RPC_URL: str = "https://api.devnet.solana.com"
    SOLANA_NETWORK: str = "devnet"
    SOLANA_COMMITMENT: str = "confirmed"

    # Collection and wallet. The wallet key is a base58 encoded 64-byte secret key.
    COLLECTION_ADDRESS: Optional[str] = None
    WALLET_PRIVATE_KEY: Optional[str] = Field(None, repr=False)

    # Validation limits
    NAME_MAX_LENGTH: int = 32
    SYMBOL_MAX_LENGTH: int = 10
    DESCRIPTION_MAX_LENGTH: int = 1000
    ATTRIBUTES_MAX_COUNT: int = 50
    SELLER_FEE_MAX_BASIS_POINTS: int = 10000
    DEFAULT_SELLER_FEE_BASIS_POINTS: int = 500

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def missing_required(self) -> List[str]:
        return [key for key in REQUIRED_SETTINGS if not getattr(self, key)]

    def validate_required(self) -> None:
        """Raises ConfigurationError listing every required setting that is not set."""
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    def network_info(self) -> Dict[str, Any]:
        network = self.SOLANA_NETWORK
        return {
            "rpc_url": self.SOLANA_RPC_URL,
            "network": network,
            "is_devnet": network == "devnet",
            "is_mainnet": network == "mainnet-beta",
            "is_testnet": network == "testnet",
        }


settings = Settings()
