"""
Tests for DocumentSearchClient against a mock Document API.

Tests:
- Request parameters and headers
- Response mapping
- Pagination through page state
- Error mapping and retries
"""

import json

import httpx
import pytest

from stargate_docsearch import (
    ClientConfigurationError,
    DocumentApiAuthenticationError,
    DocumentApiError,
    DocumentApiTimeoutError,
    DocumentApiUnavailableError,
    DocumentSearchClient,
    QueryValidationError,
    SearchDocumentQuery,
    build_search_params,
)


# ============================================================================
# Request Parameter Tests
# ============================================================================

@pytest.mark.unit
class TestBuildSearchParams:
    """Test query to HTTP parameter mapping."""

    def test_minimal_query(self):
        """Test an unfiltered query only sends the page size."""
        params = build_search_params(SearchDocumentQuery.builder().build())
        assert params == {"page-size": "20"}

    def test_full_query(self):
        query = (
            SearchDocumentQuery.builder()
            .with_page_size(5)
            .with_page_state("cursor")
            .select("name", "age")
            .where("age").is_greater_than(21)
            .build()
        )
        params = build_search_params(query)

        assert params == {
            "page-size": "5",
            "page-state": "cursor",
            "where": '{"age": {"$gt": 21}}',
            "fields": '["age", "name"]',
        }


# ============================================================================
# Search Tests
# ============================================================================

@pytest.mark.unit
class TestSearch:
    """Test single page searches."""

    @pytest.mark.asyncio
    async def test_search_request(self, search_client, document_api):
        """Test URL, token header and parameters of the request."""
        document_api.add_page({"doc-1": {"name": "alice", "age": 30}})
        query = SearchDocumentQuery.builder().with_page_size(3).where("age").is_greater_than(21).build()

        page = await search_client.search("users", query)

        request = document_api.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/api/rest/v2/namespaces/store/collections/users"
        assert request.headers["X-Cassandra-Token"] == "test-token"
        assert request.url.params["where"] == '{"age": {"$gt": 21}}'
        assert request.url.params["page-size"] == "3"
        assert "page-state" not in request.url.params

        assert len(page) == 1
        assert page.documents[0].document_id == "doc-1"
        assert page.documents[0].data == {"name": "alice", "age": 30}
        assert page.page_state is None
        assert page.has_next is False

    @pytest.mark.asyncio
    async def test_search_with_next_page(self, search_client, document_api):
        document_api.add_page({"a": {}, "b": {}}, next_state="page-2")

        page = await search_client.search("users", SearchDocumentQuery.builder().build())

        assert [d.document_id for d in page.documents] == ["a", "b"]
        assert page.page_state == "page-2"
        assert page.has_next is True

    @pytest.mark.asyncio
    async def test_missing_collection_is_empty(self, search_client, document_api):
        """Test a 404 maps to an empty page."""
        page = await search_client.search("unknown", SearchDocumentQuery.builder().build())

        assert page.documents == []
        assert page.page_state is None

    @pytest.mark.asyncio
    async def test_empty_collection_name(self, search_client):
        with pytest.raises(QueryValidationError):
            await search_client.search("", SearchDocumentQuery.builder().build())

    @pytest.mark.asyncio
    async def test_search_records_metrics(self, search_client, document_api):
        document_api.add_page({"a": {}, "b": {}})

        await search_client.search("users", SearchDocumentQuery.builder().build())

        metrics = search_client.metrics
        assert metrics.get_value("requests_total", {"collection": "users", "outcome": "success"}) == 1.0
        assert metrics.get_value("documents_returned_total", {"collection": "users"}) == 2.0


# ============================================================================
# Pagination Tests
# ============================================================================

@pytest.mark.unit
class TestPagination:
    """Test following page state cursors."""

    @pytest.mark.asyncio
    async def test_iter_pages(self, search_client, document_api):
        """Test each cursor is fed back until the last page."""
        document_api.add_page({"a": {"n": 1}}, next_state="s2")
        document_api.add_page({"b": {"n": 2}}, next_state="s3", state="s2")
        document_api.add_page({"c": {"n": 3}}, state="s3")
        query = SearchDocumentQuery.builder().with_page_size(1).build()

        pages = [page async for page in search_client.iter_pages("users", query)]

        assert [p.documents[0].document_id for p in pages] == ["a", "b", "c"]
        sent_states = [r.url.params.get("page-state") for r in document_api.requests]
        assert sent_states == [None, "s2", "s3"]
        assert query.page_state is None

    @pytest.mark.asyncio
    async def test_iter_pages_updates_query(self, search_client, document_api):
        """Test the query carries the next cursor while iterating."""
        document_api.add_page({"a": {}}, next_state="s2")
        document_api.add_page({"b": {}}, state="s2")
        query = SearchDocumentQuery.builder().build()

        async for page in search_client.iter_pages("users", query):
            assert query.page_state == page.page_state
            break

        assert query.page_state == "s2"

    @pytest.mark.asyncio
    async def test_find_all(self, search_client, document_api):
        document_api.add_page({"a": {}, "b": {}}, next_state="s2")
        document_api.add_page({"c": {}}, state="s2")

        ids = [d.document_id async for d in search_client.find_all("users", SearchDocumentQuery.builder().build())]

        assert ids == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_resume_from_page_state(self, search_client, document_api):
        """Test a query built with a page state starts at that page."""
        document_api.add_page({"a": {}}, next_state="s2")
        document_api.add_page({"b": {}}, state="s2")
        query = SearchDocumentQuery.builder().with_page_state("s2").build()

        ids = [d.document_id async for d in search_client.find_all("users", query)]

        assert ids == ["b"]


# ============================================================================
# Error Handling Tests
# ============================================================================

@pytest.mark.unit
class TestErrors:
    """Test error mapping and retries."""

    @pytest.mark.asyncio
    async def test_server_error_retried(self, search_client, document_api):
        """Test a transient 503 is retried."""
        document_api.fail_next(lambda request: httpx.Response(503, text="unavailable"))
        document_api.add_page({"a": {}})

        page = await search_client.search("users", SearchDocumentQuery.builder().build())

        assert len(page) == 1
        assert len(document_api.requests) == 2
        assert search_client.metrics.get_value("retries_total", {"collection": "users"}) == 1.0

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, search_client, document_api):
        for _ in range(3):
            document_api.fail_next(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(DocumentApiError) as exc_info:
            await search_client.search("users", SearchDocumentQuery.builder().build())

        assert exc_info.value.status_code == 500
        assert len(document_api.requests) == 3
        metrics = search_client.metrics
        assert metrics.get_value("requests_total", {"collection": "users", "outcome": "error"}) == 1.0

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, search_client, document_api):
        """Test a 400 surfaces immediately with the response body."""
        body = json.dumps({"description": "Invalid where clause", "code": 400})
        document_api.fail_next(lambda request: httpx.Response(400, text=body))

        with pytest.raises(DocumentApiError) as exc_info:
            await search_client.search("users", SearchDocumentQuery.builder().build())

        assert exc_info.value.status_code == 400
        assert "Invalid where clause" in exc_info.value.response_body
        assert len(document_api.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_authentication_error(self, search_client, document_api, status):
        document_api.fail_next(lambda request: httpx.Response(status, text="denied"))

        with pytest.raises(DocumentApiAuthenticationError):
            await search_client.search("users", SearchDocumentQuery.builder().build())
        assert len(document_api.requests) == 1

    @pytest.mark.asyncio
    async def test_timeout_retried_then_raised(self, search_client, document_api):
        """Test timeouts are retried and reported as DocumentApiTimeoutError."""
        def timeout(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        for _ in range(3):
            document_api.fail_next(timeout)

        with pytest.raises(DocumentApiTimeoutError) as exc_info:
            await search_client.search("users", SearchDocumentQuery.builder().build())

        assert exc_info.value.timeout_seconds == 30.0
        assert len(document_api.requests) == 3

    @pytest.mark.asyncio
    async def test_connect_error(self, search_client, document_api):
        def refused(request):
            raise httpx.ConnectError("connection refused", request=request)

        for _ in range(3):
            document_api.fail_next(refused)

        with pytest.raises(DocumentApiUnavailableError):
            await search_client.search("users", SearchDocumentQuery.builder().build())

    @pytest.mark.asyncio
    async def test_invalid_json(self, search_client, document_api):
        document_api.fail_next(lambda request: httpx.Response(200, text="not json"))

        with pytest.raises(DocumentApiError) as exc_info:
            await search_client.search("users", SearchDocumentQuery.builder().build())
        assert "invalid JSON" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unexpected_data_shape(self, search_client, document_api):
        document_api.fail_next(lambda request: httpx.Response(200, json={"data": ["a", "b"]}))

        with pytest.raises(DocumentApiError):
            await search_client.search("users", SearchDocumentQuery.builder().build())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [[1, 2], "text", 3])
    async def test_body_not_an_object(self, search_client, document_api, body):
        """Test a JSON body that is not an object maps to DocumentApiError."""
        document_api.fail_next(lambda request: httpx.Response(200, json=body))

        with pytest.raises(DocumentApiError) as exc_info:
            await search_client.search("users", SearchDocumentQuery.builder().build())

        assert exc_info.value.status_code == 200
        metrics = search_client.metrics
        assert metrics.get_value("requests_total", {"collection": "users", "outcome": "error"}) == 1.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("collection", ["users/../../schemas", "a b", "users?x=1", "..", "users%2F"])
    async def test_invalid_collection_name(self, search_client, document_api, collection):
        """Test collection names that could change the request path are refused."""
        with pytest.raises(QueryValidationError) as exc_info:
            await search_client.search(collection, SearchDocumentQuery.builder().build())

        assert exc_info.value.field == "collection"
        assert document_api.requests == []


# ============================================================================
# Lifecycle Tests
# ============================================================================

@pytest.mark.unit
class TestLifecycle:
    """Test construction and closing."""

    def test_invalid_config(self):
        with pytest.raises(ClientConfigurationError):
            DocumentSearchClient({"api_endpoint": "http://localhost"})

    @pytest.mark.asyncio
    async def test_closed_client(self, client_config):
        async with DocumentSearchClient(client_config) as client:
            pass

        with pytest.raises(ClientConfigurationError):
            await client.search("users", SearchDocumentQuery.builder().build())

    @pytest.mark.asyncio
    async def test_shared_http_client_left_open(self, client_config):
        """Test a caller provided HTTP client is not closed by aclose()."""
        http_client = httpx.AsyncClient()
        client = DocumentSearchClient(client_config, http_client=http_client)

        await client.aclose()

        assert http_client.is_closed is False
        await http_client.aclose()

    def test_from_env_invalid(self, monkeypatch, tmp_path):
        """Test an invalid environment raises ClientConfigurationError."""
        monkeypatch.delenv("ASTRA_DB_APPLICATION_TOKEN", raising=False)
        monkeypatch.delenv("STARGATE_API_ENDPOINT", raising=False)
        monkeypatch.delenv("ASTRA_DB_ID", raising=False)
        monkeypatch.delenv("ASTRA_DB_REGION", raising=False)

        with pytest.raises(ClientConfigurationError):
            DocumentSearchClient.from_env(str(tmp_path / "missing.env"))

    def test_from_env_malformed_number(self, monkeypatch, tmp_path):
        """Test a non numeric timeout raises ClientConfigurationError, not ValueError."""
        monkeypatch.setenv("STARGATE_API_ENDPOINT", "http://localhost:8082")
        monkeypatch.setenv("ASTRA_DB_APPLICATION_TOKEN", "token")
        monkeypatch.setenv("STARGATE_REQUEST_TIMEOUT", "abc")

        with pytest.raises(ClientConfigurationError):
            DocumentSearchClient.from_env(str(tmp_path / "missing.env"))
