"""
Configuration management for DocumentSearchClient.

This module provides:
- Pydantic-based configuration validation
- Astra endpoint resolution from database id and region
- Retry, metrics and tracing configuration
- Loading from environment variables (and a local .env file)
"""

import os
import logging
from typing import Optional
from urllib.parse import quote

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

logger = logging.getLogger(__name__)

ASTRA_DOMAIN = "apps.astra.datastax.com"
DOCUMENT_API_PATH = "/api/rest/v2/namespaces"


# ============================================================================
# Configuration Models
# ============================================================================

class RetryConfig(BaseModel):
    """Retry configuration for transient HTTP failures."""

    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of attempts per request"
    )

    initial_delay: float = Field(
        default=0.5,
        ge=0.0,
        le=5.0,
        description="Initial retry delay in seconds"
    )

    backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Exponential backoff multiplier"
    )

    max_delay: float = Field(
        default=10.0,
        ge=0.0,
        le=60.0,
        description="Maximum retry delay in seconds"
    )


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration."""

    enabled: bool = Field(
        default=True,
        description="Enable metrics collection"
    )

    namespace: str = Field(
        default="stargate_docsearch",
        description="Prefix of exported metric names"
    )

    @field_validator('namespace')
    @classmethod
    def validate_namespace(cls, v):
        if not v or not v.replace('_', '').isalnum():
            raise ValueError("Metrics namespace must be alphanumeric with optional underscores")
        return v


class TracingConfig(BaseModel):
    """OpenTelemetry tracing configuration."""

    enabled: bool = Field(
        default=False,
        description="Create a span for every Document API request"
    )

    service_name: str = Field(
        default="stargate-docsearch",
        description="Service name reported on spans"
    )


class StargateClientConfig(BaseModel):
    """
    Complete configuration for DocumentSearchClient.

    Either api_endpoint or database_id + database_region must be set.

    Example usage:
        # Astra
        config = StargateClientConfig(
            database_id="3ed83de7-d97f-4fb6-bf9f-82e9f7eafa23",
            database_region="us-east1",
            application_token="AstraCS:...",
            namespace="store",
        )

        # Standalone Stargate
        config = StargateClientConfig(
            api_endpoint="http://localhost:8082",
            application_token="token",
            namespace="store",
        )
    """

    api_endpoint: Optional[str] = Field(
        default=None,
        description="Stargate base URL, overrides database_id/database_region"
    )

    database_id: Optional[str] = Field(
        default=None,
        description="Astra database identifier"
    )

    database_region: Optional[str] = Field(
        default=None,
        description="Astra database region"
    )

    application_token: str = Field(
        description="Token sent as X-Cassandra-Token"
    )

    namespace: str = Field(
        description="Namespace (keyspace) holding the collections"
    )

    timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Request timeout in seconds"
    )

    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry configuration"
    )

    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Metrics configuration"
    )

    tracing: TracingConfig = Field(
        default_factory=TracingConfig,
        description="Tracing configuration"
    )

    model_config = ConfigDict(validate_assignment=True)

    @field_validator('application_token')
    @classmethod
    def validate_token(cls, v):
        if not v or not v.strip():
            raise ValueError("application_token must not be empty")
        return v

    @field_validator('namespace')
    @classmethod
    def validate_namespace(cls, v):
        """Validate namespace name."""
        if not v or not v.replace('_', '').isalnum():
            raise ValueError(
                "Namespace must be alphanumeric with optional underscores"
            )
        return v

    @field_validator('api_endpoint')
    @classmethod
    def validate_api_endpoint(cls, v):
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_endpoint must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @model_validator(mode='after')
    def validate_endpoint(self):
        """Require an explicit endpoint or a complete Astra database reference."""
        if self.api_endpoint is None:
            if not self.database_id or not self.database_region:
                raise ValueError(
                    "Either 'api_endpoint' or both 'database_id' and 'database_region' are required"
                )
        return self

    @property
    def base_url(self) -> str:
        if self.api_endpoint:
            return self.api_endpoint
        return f"https://{self.database_id}-{self.database_region}.{ASTRA_DOMAIN}"

    @property
    def document_api_url(self) -> str:
        """Base URL of the namespace in the Document API."""
        return f"{self.base_url}{DOCUMENT_API_PATH}/{self.namespace}"

    def collection_url(self, collection: str) -> str:
        return f"{self.document_api_url}/collections/{quote(collection, safe='')}"


def load_config_from_env(dotenv_path: Optional[str] = None) -> StargateClientConfig:
    """
    Load configuration from environment variables.

    Values from a .env file are loaded first without overriding variables
    already set in the process environment.

    Environment variables:
        STARGATE_API_ENDPOINT: Stargate base URL (standalone Stargate)
        ASTRA_DB_ID: Astra database identifier
        ASTRA_DB_REGION: Astra database region
        ASTRA_DB_APPLICATION_TOKEN: Application token
        ASTRA_DB_KEYSPACE: Namespace (default: default_keyspace)
        STARGATE_REQUEST_TIMEOUT: Request timeout in seconds (default: 30)
        STARGATE_MAX_RETRIES: Attempts per request (default: 3)
        STARGATE_TRACING_ENABLED: Enable tracing (true/false)

    Returns:
        Validated configuration
    """
    load_dotenv(dotenv_path)

    config = StargateClientConfig(
        api_endpoint=os.getenv("STARGATE_API_ENDPOINT") or None,
        database_id=os.getenv("ASTRA_DB_ID"),
        database_region=os.getenv("ASTRA_DB_REGION"),
        application_token=os.getenv("ASTRA_DB_APPLICATION_TOKEN", ""),
        namespace=os.getenv("ASTRA_DB_KEYSPACE", "default_keyspace"),
        timeout=os.getenv("STARGATE_REQUEST_TIMEOUT", "30"),
        retry=RetryConfig(
            max_retries=os.getenv("STARGATE_MAX_RETRIES", "3"),
        ),
        tracing=TracingConfig(
            enabled=os.getenv("STARGATE_TRACING_ENABLED", "false").lower() == "true",
        ),
    )

    logger.info(f"Loaded Stargate client configuration for {config.document_api_url}")
    return config
