"""
Async client executing SearchDocumentQuery against the Stargate Document API.

The client turns a built query into a GET on
{base}/api/rest/v2/namespaces/{namespace}/collections/{collection}, maps the
response to DocumentResultPage and follows page-state cursors.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from stargate_docsearch.config import StargateClientConfig, load_config_from_env
from stargate_docsearch.exceptions import (
    ClientConfigurationError,
    DocumentApiAuthenticationError,
    DocumentApiError,
    DocumentApiTimeoutError,
    DocumentApiUnavailableError,
    QueryValidationError,
    StargateClientError,
)
from stargate_docsearch.logging_utils import PerformanceLogger
from stargate_docsearch.observability import SearchMetrics, Tracer
from stargate_docsearch.query import SearchDocumentQuery

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Cassandra-Token"
USER_AGENT = "stargate-docsearch-python"


@dataclass
class Document:
    """A document returned by a search, keyed by its id."""
    document_id: str
    data: dict[str, Any]


@dataclass
class DocumentResultPage:
    """One page of search results and the cursor of the next page, if any."""
    documents: list[Document] = field(default_factory=list)
    page_state: Optional[str] = None

    @property
    def has_next(self) -> bool:
        return bool(self.page_state)

    def __len__(self) -> int:
        return len(self.documents)


def build_search_params(query: SearchDocumentQuery) -> dict[str, str]:
    """
    Map a query to Document API query parameters.

    The where clause is left out when it has no condition, the projection is
    sent as a sorted JSON array.
    """
    params = {"page-size": str(query.page_size)}
    if query.where and query.where != "{}":
        params["where"] = query.where
    if query.page_state:
        params["page-state"] = query.page_state
    if query.returned_fields:
        params["fields"] = json.dumps(sorted(query.returned_fields))
    return params


def _is_transient(error: BaseException) -> bool:
    if isinstance(error, (DocumentApiTimeoutError, DocumentApiUnavailableError)):
        return True
    return (
        isinstance(error, DocumentApiError)
        and not isinstance(error, DocumentApiAuthenticationError)
        and error.status_code is not None
        and error.status_code >= 500
    )


class DocumentSearchClient:
    """
    Search documents of a namespace through the Stargate Document API.

    Example:
        async with DocumentSearchClient(load_config_from_env()) as client:
            query = SearchDocumentQuery.builder().where("age").is_greater_than(21).build()
            async for document in client.find_all("users", query):
                print(document.document_id, document.data)
    """

    def __init__(
        self,
        config: StargateClientConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        tracer: Optional[Tracer] = None,
        metrics: Optional[SearchMetrics] = None,
    ):
        if not isinstance(config, StargateClientConfig):
            raise ClientConfigurationError(
                f"Expected StargateClientConfig, got {type(config).__name__}"
            )
        self.config = config
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.timeout)
        self.tracer = tracer or Tracer(
            service_name=config.tracing.service_name,
            enabled=config.tracing.enabled,
        )
        self.metrics = metrics or SearchMetrics(
            namespace=config.metrics.namespace,
            enabled=config.metrics.enabled,
        )
        self._closed = False

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **kwargs) -> "DocumentSearchClient":
        """
        Create a client from environment variables.

        Raises:
            ClientConfigurationError: If the environment holds an invalid configuration
        """
        try:
            config = load_config_from_env(dotenv_path)
        except ValidationError as e:
            raise ClientConfigurationError("Invalid Stargate client configuration in environment", e) from e
        return cls(config, **kwargs)

    @property
    def headers(self) -> dict[str, str]:
        return {
            TOKEN_HEADER: self.config.application_token,
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, collection: str, query: SearchDocumentQuery) -> DocumentResultPage:
        """
        Fetch one page of documents matching query.

        Args:
            collection: Collection name in the configured namespace
            query: Built query; its page_state selects the page

        Returns:
            DocumentResultPage, empty when the collection does not exist

        Raises:
            QueryValidationError: If collection is empty or not a valid name
            DocumentApiError: On a non-success response
            DocumentApiTimeoutError: If the request kept timing out
            DocumentApiUnavailableError: If the endpoint kept being unreachable
        """
        if not isinstance(collection, str) or not collection:
            raise QueryValidationError("must be a non-empty string", field="collection", value=collection)
        if not collection.replace("_", "").isalnum():
            raise QueryValidationError(
                "must be alphanumeric with optional underscores",
                field="collection",
                value=collection
            )
        if self._closed:
            raise ClientConfigurationError("Client is closed")

        url = self.config.collection_url(collection)
        params = build_search_params(query)

        start = time.perf_counter()
        try:
            async with PerformanceLogger("search", logger=logger, collection=collection):
                async with self.tracer.span(
                    "docsearch.search",
                    attributes={
                        "collection": collection,
                        "namespace": self.config.namespace,
                        "page_size": query.page_size,
                        "where": query.where,
                    }
                ):
                    response = await self._get_with_retry(collection, url, params)
                    page = self._parse_page(response)
        except StargateClientError:
            self.metrics.record_request(collection, (time.perf_counter() - start) * 1000, success=False)
            raise

        self.metrics.record_request(
            collection,
            (time.perf_counter() - start) * 1000,
            success=True,
            documents=len(page.documents),
        )
        return page

    async def iter_pages(self, collection: str, query: SearchDocumentQuery) -> AsyncIterator[DocumentResultPage]:
        """
        Iterate over every page of results.

        The cursor returned with each page is written back to
        query.page_state before the next request; it is None once the last
        page has been read.
        """
        while True:
            page = await self.search(collection, query)
            query.page_state = page.page_state
            yield page
            if not page.has_next:
                break

    async def find_all(self, collection: str, query: SearchDocumentQuery) -> AsyncIterator[Document]:
        """Iterate over the documents of every page."""
        async for page in self.iter_pages(collection, query):
            for document in page.documents:
                yield document

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _get_with_retry(self, collection: str, url: str, params: dict[str, str]) -> httpx.Response:
        retry_config = self.config.retry

        def before_sleep(retry_state):
            self.metrics.record_retry(collection)
            logger.warning(
                f"Retrying search on '{collection}' "
                f"(attempt {retry_state.attempt_number}/{retry_config.max_retries}): "
                f"{retry_state.outcome.exception()}"
            )

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(retry_config.max_retries),
            wait=wait_exponential(
                multiplier=retry_config.initial_delay,
                exp_base=retry_config.backoff_factor,
                max=retry_config.max_delay,
            ),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep,
            reraise=True,
        ):
            with attempt:
                return await self._get(url, params)

    async def _get(self, url: str, params: dict[str, str]) -> httpx.Response:
        try:
            response = await self._http.get(url, params=params, headers=self.headers)
        except httpx.TimeoutException as e:
            raise DocumentApiTimeoutError(
                f"Search request to {url} timed out",
                original_error=e,
                timeout_seconds=self.config.timeout,
            ) from e
        except httpx.TransportError as e:
            raise DocumentApiUnavailableError(f"Cannot reach {url}", original_error=e) from e

        if response.status_code in (401, 403):
            raise DocumentApiAuthenticationError(
                "Document API rejected the application token",
                status_code=response.status_code,
                response_body=response.text,
            )
        if response.status_code >= 400 and response.status_code != 404:
            raise DocumentApiError(
                f"Search failed: {response.text[:200]}",
                status_code=response.status_code,
                response_body=response.text,
            )
        return response

    def _parse_page(self, response: httpx.Response) -> DocumentResultPage:
        # Collection not found: nothing to return
        if response.status_code == 404 or not response.content:
            return DocumentResultPage()

        try:
            body = response.json()
        except ValueError as e:
            raise DocumentApiError(
                "Document API returned invalid JSON",
                status_code=response.status_code,
                response_body=response.text,
                original_error=e,
            ) from e

        if not isinstance(body, dict):
            raise DocumentApiError(
                "Unexpected search response, body is not an object",
                status_code=response.status_code,
                response_body=response.text,
            )

        data = body.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise DocumentApiError(
                "Unexpected search response, 'data' is not an object",
                status_code=response.status_code,
                response_body=response.text,
            )

        return DocumentResultPage(
            documents=[Document(document_id=doc_id, data=doc) for doc_id, doc in data.items()],
            page_state=body.get("pageState") or None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this client created it."""
        if self._closed:
            return
        self._closed = True
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> "DocumentSearchClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
