"""Application configuration using pydantic-settings.

A single seed phrase roots the master identity (pool controller) and every
session identity derived per dApp connection.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    state_dir: str = Field(
        default="./data", description="Directory for the session counter, wallet and order files"
    )

    # ======================
    # Wallet
    # ======================
    wallet_seed_phrase: Optional[str] = Field(
        default=None, description="BIP-39 seed phrase for the master identity"
    )
    master_key: Optional[str] = Field(
        default=None, description="Fernet key used to encrypt the persisted seed phrase"
    )

    # ======================
    # Chain
    # ======================
    rpc_url: str = Field(
        default="https://ethereum-sepolia-rpc.publicnode.com", description="EVM JSON-RPC URL"
    )
    chain_id: int = Field(default=11155111, description="EVM chain ID (Sepolia)")
    receipt_poll_interval: float = Field(
        default=2.0, description="Seconds between receipt polls while awaiting confirmation"
    )

    # ======================
    # Pool / Funding
    # ======================
    pool_contract_address: str = Field(
        default="0x0000000000000000000000000000000000000000",
        description="Reserve pool contract holding the master identity's deposits",
    )
    funding_safety_margin_wei: int = Field(
        default=10**16, description="Buffer added to every funding deficit (0.01 ETH)"
    )
    funding_verify_attempts: int = Field(
        default=5, description="Balance polls after a funding transfer is confirmed"
    )
    funding_verify_delay: float = Field(
        default=3.0, description="Seconds between balance polls"
    )
    fallback_transfer_gas: int = Field(
        default=21000, description="Gas limit for the direct-transfer fallback"
    )

    # ======================
    # Progress reporting
    # ======================
    progress_clear_delay_success: float = Field(
        default=5.0, description="Seconds a completed progress record stays visible"
    )
    progress_clear_delay_error: float = Field(
        default=10.0, description="Seconds a failed progress record stays visible"
    )

    # ======================
    # Address substitution
    # ======================
    address_substitution_enabled: bool = Field(
        default=False, description="Expose a placeholder address to dApps"
    )
    placeholder_address: str = Field(
        default="0xA6a49d09321f701AB4295e5eB115E65EcF9b83B5",
        description="Address shown to dApps when substitution is enabled",
    )

    # ======================
    # Escrow / Relayer
    # ======================
    resolver_contract_address: str = Field(
        default="0x0000000000000000000000000000000000000000",
        description="Cross-chain resolver contract (deploySrc/deployDst/withdraw/cancel)",
    )
    escrow_src_contract_address: str = Field(
        default="0x0000000000000000000000000000000000000000",
        description="Source escrow contract supporting relayer withdrawals",
    )
    escrow_chain_id: Optional[int] = Field(
        default=None, description="Chain ID of the escrow contracts (defaults to chain_id)"
    )
    relayer_private_key: Optional[str] = Field(
        default=None, description="Relayer signing key for escrow operations"
    )
    relayer_domain_name: str = Field(
        default="XMREscrowSrc", description="EIP-712 domain name for relayer withdrawals"
    )
    relayer_domain_version: str = Field(
        default="1", description="EIP-712 domain version for relayer withdrawals"
    )

    # ======================
    # Bridge (swap daemon / order service)
    # ======================
    swapd_rpc_url: str = Field(
        default="http://127.0.0.1:5000", description="Swap daemon JSON-RPC URL"
    )
    order_service_url: str = Field(
        default="http://localhost:3000", description="Order service base URL"
    )
    relayer_endpoint: str = Field(
        default="http://localhost:3000/api/relayer",
        description="Relayer endpoint advertised in swap offers",
    )
    eth_xmr_rate: str = Field(default="15.5", description="Fallback ETH to XMR exchange rate")
    offer_spread: float = Field(
        default=0.05, description="Offer min/max spread around the target amount (5%)"
    )
    bridge_timeout: float = Field(default=30.0, description="Bridge HTTP timeout in seconds")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_wallet(self) -> bool:
        """Check if wallet seed phrase is configured."""
        return bool(self.wallet_seed_phrase and len(self.wallet_seed_phrase.split()) >= 12)

    @property
    def settlement_chain_id(self) -> int:
        """Chain ID used in the relayer signing domain."""
        return self.escrow_chain_id or self.chain_id

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "wallet_configured": self.has_wallet,
            "master_key": "***" if self.master_key else "(not set)",
            "chain": {"rpc": self.rpc_url, "chain_id": self.chain_id},
            "funding": {
                "pool": self.pool_contract_address,
                "safety_margin_wei": self.funding_safety_margin_wei,
                "verify_attempts": self.funding_verify_attempts,
                "verify_delay": self.funding_verify_delay,
            },
            "escrow": {
                "resolver": self.resolver_contract_address,
                "escrow_src": self.escrow_src_contract_address,
                "chain_id": self.settlement_chain_id,
                "relayer_key": "***" if self.relayer_private_key else "(not set)",
                "domain": f"{self.relayer_domain_name}/{self.relayer_domain_version}",
            },
            "bridge": {
                "swapd": self.swapd_rpc_url,
                "orders": self.order_service_url,
            },
            "address_substitution": self.address_substitution_enabled,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
