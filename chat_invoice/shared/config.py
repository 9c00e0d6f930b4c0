"""Shared configuration management for the invoice pipeline.

Settings are read from APP_-prefixed environment variables and an optional .env
file: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    service_name: str = Field(
        default="chat-invoice-pipeline",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Completion provider configuration
    completion_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Text-completion provider: openai (cloud API), ollama (self-hosted LLM)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used for order interpretation",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for order interpretation",
    )
    completion_temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sampling temperature; kept low so extraction stays close to deterministic",
    )
    completion_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single completion request",
    )
    completion_max_tokens_base: int = Field(
        default=1000,
        description="Output token budget before catalog-size scaling",
    )
    completion_tokens_per_catalog_item: int = Field(
        default=15,
        description="Extra output tokens granted per catalog product in the prompt",
    )
    completion_max_tokens_cap: int = Field(
        default=4000,
        description="Upper bound for the output token budget",
    )
    prompt_catalog_limit: int = Field(
        default=100,
        description="Maximum number of catalog products serialized into the prompt",
    )
    prompt_message_max_chars: int = Field(
        default=6000,
        description="Raw message is truncated to this many characters in the prompt",
    )

    # Catalog snapshot cache
    catalog_cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Time-to-live of the cached catalog snapshot (0 disables caching)",
    )

    # Identity matching
    product_match_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Name similarity above which an extracted product matches a catalog product",
    )
    customer_name_match_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Name similarity above which an extracted customer matches a stored one",
    )
    customer_fuzzy_min_name_length: int = Field(
        default=3,
        description="Fuzzy name matching only runs for names longer than this",
    )
    customer_auto_add_threshold: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Confidence at which new customers are saved without review (None disables)",
    )
    customer_smart_confirm_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Confidence at which new customers get a one-click confirmation",
    )
    customer_pool_limit: int = Field(
        default=1000,
        description="Number of stored customers scanned for phone matches",
    )
    product_pool_limit: int = Field(
        default=100,
        description="Number of catalog products loaded for snapshots and matching",
    )

    # Auto-learning
    auto_learning_enabled: bool = Field(
        default=True,
        description="Run customer/product auto-learning after an invoice is confirmed",
    )

    # Payment schedule defaults
    default_down_payment_percentage: Decimal = Field(
        default=Decimal("30"),
        gt=0,
        le=100,
        description="Down payment percentage used when a message asks for DP without a value",
    )
    default_payment_terms: Literal["DUE_ON_RECEIPT", "NET_15", "NET_30", "NET_45", "NET_60"] = (
        Field(
            default="NET_30",
            description="Payment terms used to derive the invoice due date",
        )
    )

    # Default business profile (merchant identity)
    business_name: str = Field(default="My Business", description="Merchant business name")
    business_address: str = Field(default="", description="Merchant address")
    business_phone: str = Field(default="", description="Merchant phone")
    business_email: str = Field(default="", description="Merchant email")
    business_website: str = Field(default="", description="Merchant website")
    business_logo_url: str | None = Field(default=None, description="Merchant logo URL")
    business_tax_enabled: bool = Field(default=False, description="Apply tax to invoices")
    business_tax_rate: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=100,
        description="Merchant tax rate in percent; authoritative for every tax computation",
    )
    business_tax_name: str = Field(default="PPN", description="Tax label shown on invoices")
    business_terms: str = Field(
        default="Standard payment terms apply",
        description="Terms and conditions attached to invoices",
    )
    business_currency: str = Field(default="IDR", description="Invoice currency (ISO 4217)")

    # Persistence
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy database URL; in-memory storage is used when unset",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
