"""Shared configuration management for the invoice pipeline.

Based on Pydantic Settings v2:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_DEFAULT_CURRENCY=INR
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

    # Service configuration
    service_name: str = Field(
        default="invoiceflow",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Extraction provider configuration
    extraction_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Extraction provider: openai (cloud API), ollama (self-hosted LLM)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used for field extraction",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for extraction (e.g., qwen2.5:7b, llama3.1:8b)",
    )
    extraction_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound for one extraction call, OCR included",
    )

    # Normalization and status policy
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO 4217 code used when the document's currency cannot be resolved",
    )
    due_date_policy: Literal["net_days", "none"] = Field(
        default="net_days",
        description=(
            "What to do when no due date is extracted: net_days (invoice date + "
            "due_date_default_days) or none (leave it empty)"
        ),
    )
    due_date_default_days: int = Field(
        default=30,
        ge=0,
        description="Payment term applied by the net_days due date policy",
    )
    paid_age_threshold_days: int = Field(
        default=60,
        ge=1,
        description="Invoices dated further back than this are assumed settled",
    )
    prepaid_vendors: list[str] = Field(
        default_factory=list,
        description="Vendor name fragments whose invoices are always prepaid (e.g. amazon)",
    )

    # Categorization
    categorization_strategy: Literal["keyword", "delegated", "chained"] = Field(
        default="keyword",
        description=(
            "keyword (tag matching), delegated (extraction backend picks from the "
            "workspace list), chained (keyword first, delegated as fallback)"
        ),
    )

    # Invoice and workspace store
    store_backend: Literal["mongo", "memory"] = Field(
        default="mongo",
        description="Persistence backend for invoices and workspace settings",
    )
    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string",
    )
    mongodb_database: str = Field(
        default="invoiceflow",
        description="MongoDB database name",
    )

    # Document archive
    archive_backend: Literal["minio", "filesystem"] = Field(
        default="filesystem",
        description="Where original uploads are archived",
    )
    archive_dir: str = Field(
        default="./data/invoice-raw",
        description="Directory used by the filesystem archive",
    )

    # Storage configuration (S3-compatible object storage)
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="invoice-raw",
        description="Bucket holding archived invoice uploads",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )

    # Background queue (arq)
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the ingestion queue",
    )
    queue_max_jobs: int = Field(
        default=10,
        ge=1,
        description="Maximum concurrent ingestion jobs per worker",
    )
    queue_job_timeout: int = Field(
        default=300,
        ge=1,
        description="Job timeout in seconds",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
