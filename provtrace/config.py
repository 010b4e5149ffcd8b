"""Runtime configuration: env-driven.

Centralized config using pydantic-settings.  Reads from a .env file and
PROVTRACE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ProdConfig(BaseSettings):
    """Configuration with environment variable overrides.

    All settings can be overridden via PROVTRACE_* environment variables
    or a .env file in the working directory.

    Examples
    --------
    Override via environment::

        export PROVTRACE_STORAGE_SPACE_DID=did:key:z6Mk...
        export PROVTRACE_STORAGE_EMAIL=ops@example.com
        export PROVTRACE_LEDGER_CONTRACT_ADDRESS=0x...

    Or via .env file::

        PROVTRACE_ENVIRONMENT=production
        PROVTRACE_GATEWAY_URL=https://w3s.link
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PROVTRACE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage space bootstrap
    storage_space_did: str = ""
    storage_email: str = ""
    login_timeout_seconds: float = 15.0
    plan_timeout_seconds: float = 15.0

    # Uploads
    upload_timeout_seconds: float = 120.0
    upload_retry_delay_seconds: float = 0.5
    upload_reassert_delay_seconds: float = 0.3
    max_upload_bytes: int = 100 * 1024 * 1024

    # Metadata gateway
    gateway_url: str = "https://w3s.link"
    gateway_timeout_seconds: float = 30.0
    # Serve /ipfs/<cid> from the local blob store instead of the gateway
    use_local_gateway: bool = True

    # Ledger
    ledger_contract_address: str = ""
    ledger_network: str = "local"
    ledger_chain_id: int = 31337
    signer_address: str = ""

    # Local data
    data_dir: Path = Path(".provtrace")
    blob_store_path: Path = Path(".provtrace/blobs")
    ledger_db_path: Path = Path(".provtrace/ledger.db")
    session_path: Path = Path(".provtrace/session.json")
    session_ttl_hours: float = 24.0

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton: import as `from provtrace.config import config`
config = ProdConfig()
