"""
Stargate Document Search - fluent search queries for the Stargate Document API.

This package provides a builder for Document API where clauses and an async
client executing the resulting queries against Stargate or DataStax Astra.
"""

from stargate_docsearch.query import (
    SearchDocumentQuery,
    SearchDocumentQueryBuilder,
    SearchDocumentWhere,
    WhereState,
    PAGING_SIZE_MAX,
    DEFAULT_PAGING_SIZE,
)

from stargate_docsearch.filters import (
    Filter,
    FilterCondition,
    serialize_filters,
)

from stargate_docsearch.exceptions import (
    StargateClientError,
    QueryValidationError,
    QuerySequencingError,
    ClientConfigurationError,
    DocumentApiError,
    DocumentApiAuthenticationError,
    DocumentApiTimeoutError,
    DocumentApiUnavailableError,
)

from stargate_docsearch.config import (
    StargateClientConfig,
    RetryConfig,
    MetricsConfig,
    TracingConfig,
    load_config_from_env,
)

from stargate_docsearch.client import (
    DocumentSearchClient,
    Document,
    DocumentResultPage,
    build_search_params,
)

from stargate_docsearch.observability import (
    Tracer,
    SearchMetrics,
)

from stargate_docsearch.logging_utils import (
    StructuredFormatter,
    PerformanceLogger,
    setup_logging,
)

__version__ = "1.0.0"

__all__ = [
    # Query builder
    "SearchDocumentQuery",
    "SearchDocumentQueryBuilder",
    "SearchDocumentWhere",
    "WhereState",
    "PAGING_SIZE_MAX",
    "DEFAULT_PAGING_SIZE",
    "Filter",
    "FilterCondition",
    "serialize_filters",
    # Errors
    "StargateClientError",
    "QueryValidationError",
    "QuerySequencingError",
    "ClientConfigurationError",
    "DocumentApiError",
    "DocumentApiAuthenticationError",
    "DocumentApiTimeoutError",
    "DocumentApiUnavailableError",
    # Configuration
    "StargateClientConfig",
    "RetryConfig",
    "MetricsConfig",
    "TracingConfig",
    "load_config_from_env",
    # Client
    "DocumentSearchClient",
    "Document",
    "DocumentResultPage",
    "build_search_params",
    # Observability
    "Tracer",
    "SearchMetrics",
    "StructuredFormatter",
    "PerformanceLogger",
    "setup_logging",
]
