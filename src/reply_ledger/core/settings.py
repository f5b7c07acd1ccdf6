"""Application settings and configuration.

This module defines all configuration options for the reply pipeline.
Settings are loaded from environment variables with sensible defaults.
"""

import json

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Reply Ledger", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./reply_ledger.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Worker scheduling
    workers_enabled: bool = Field(default=True, alias="WORKERS_ENABLED")
    batch_size: int = Field(default=10, alias="BATCH_SIZE")
    knowledge_interval_seconds: float = Field(default=60.0, alias="KNOWLEDGE_INTERVAL_SECONDS")
    embedding_interval_seconds: float = Field(default=60.0, alias="EMBEDDING_INTERVAL_SECONDS")
    evaluation_interval_seconds: float = Field(default=60.0, alias="EVALUATION_INTERVAL_SECONDS")
    reply_interval_seconds: float = Field(default=60.0, alias="REPLY_INTERVAL_SECONDS")
    publication_interval_seconds: float = Field(
        default=60.0, alias="PUBLICATION_INTERVAL_SECONDS"
    )
    tx_confirmation_interval_seconds: float = Field(
        default=30.0, alias="TX_CONFIRMATION_INTERVAL_SECONDS"
    )
    tx_retry_interval_seconds: float = Field(default=60.0, alias="TX_RETRY_INTERVAL_SECONDS")
    metadata_interval_seconds: float = Field(default=60.0, alias="METADATA_INTERVAL_SECONDS")

    # Transaction lifecycle
    confirmations_required: int = Field(default=10, alias="CONFIRMATIONS_REQUIRED")
    tx_confirmation_batch_size: int = Field(default=100, alias="TX_CONFIRMATION_BATCH_SIZE")
    tx_retry_batch_size: int = Field(default=10, alias="TX_RETRY_BATCH_SIZE")
    tx_retry_block_delay: int = Field(default=5, alias="TX_RETRY_BLOCK_DELAY")
    tx_max_retries: int = Field(default=5, alias="TX_MAX_RETRIES")
    metadata_batch_size: int = Field(default=100, alias="METADATA_BATCH_SIZE")
    unpin_batch_size: int = Field(default=10, alias="UNPIN_BATCH_SIZE")

    # Identity of the account the pipeline posts as (self-reply suppression)
    bot_username: str = Field(default="", alias="BOT_USERNAME")

    # AI inference (OpenAI-compatible endpoint)
    ai_api_endpoint: str = Field(default="https://api.openai.com/v1", alias="AI_API_ENDPOINT")
    ai_api_key: str = Field(default="", alias="AI_API_KEY")
    ai_model: str = Field(default="gpt-4-turbo", alias="AI_MODEL")
    ai_timeout_seconds: float = Field(default=60.0, alias="AI_TIMEOUT_SECONDS")
    embedding_model: str = Field(default="text-embedding-ada-002", alias="EMBEDDING_MODEL")
    embedding_batch_size: int = Field(default=5, alias="EMBEDDING_BATCH_SIZE")
    knowledge_top_k: int = Field(default=5, alias="KNOWLEDGE_TOP_K")
    knowledge_min_similarity: float = Field(default=0.7, alias="KNOWLEDGE_MIN_SIMILARITY")

    # Blockchain recording contract
    rpc_url: str = Field(default="https://rpc.tanenbaum.io", alias="RPC_URL")
    chain_id: int = Field(default=5700, alias="CHAIN_ID")
    contract_address: str = Field(
        default="0x0000000000000000000000000000000000000000", alias="CONTRACT_ADDRESS"
    )
    private_key: str | None = Field(default=None, alias="PRIVATE_KEY")
    explorer_url: str = Field(default="https://explorer.tanenbaum.io", alias="EXPLORER_URL")
    rpc_timeout_seconds: float = Field(default=30.0, alias="RPC_TIMEOUT_SECONDS")

    # Metadata confirmation tracking (multi-chain)
    chain_rpc_urls: dict[int, str] = Field(
        default_factory=lambda: {
            57: "https://rpc.syscoin.org",
            5700: "https://rpc.tanenbaum.io",
        },
        alias="CHAIN_RPC_URLS",
    )
    metadata_chain_id: int | None = Field(default=None, alias="METADATA_CHAIN_ID")
    ipfs_api_url: str = Field(default="http://localhost:5001", alias="IPFS_API_URL")
    ipfs_timeout_seconds: float = Field(default=15.0, alias="IPFS_TIMEOUT_SECONDS")

    # X (Twitter) OAuth 1.0a credentials
    x_api_key: str | None = Field(default=None, alias="X_API_KEY")
    x_api_secret: str | None = Field(default=None, alias="X_API_SECRET")
    x_access_token: str | None = Field(default=None, alias="X_ACCESS_TOKEN")
    x_access_token_secret: str | None = Field(default=None, alias="X_ACCESS_TOKEN_SECRET")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("chain_rpc_urls", mode="before")
    @classmethod
    def _parse_chain_rpc_urls(cls, value: object) -> object:
        """Accept the chain map as a JSON object string (e.g. from the environment)."""
        if isinstance(value, str):
            return json.loads(value) if value.strip() else {}
        return value

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def metadata_rpc_urls(self) -> dict[int, str]:
        """Return the chain map used by the metadata tracker.

        The recording chain is always included so a single-chain deployment
        needs no extra configuration.
        """
        urls = dict(self.chain_rpc_urls)
        urls.setdefault(self.chain_id, self.rpc_url)
        if self.metadata_chain_id is not None:
            return {
                chain: url for chain, url in urls.items() if chain == self.metadata_chain_id
            }
        return urls


settings = Settings()
