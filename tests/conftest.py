"""
Pytest configuration and fixtures for stargate_docsearch tests.

Provides:
- Client configuration fixtures
- A mock Document API served through httpx.MockTransport
"""

import json
from typing import Callable

import httpx
import pytest
import pytest_asyncio

from stargate_docsearch.client import DocumentSearchClient
from stargate_docsearch.config import RetryConfig, StargateClientConfig


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require a Stargate endpoint)"
    )


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def client_config() -> StargateClientConfig:
    """Configuration pointing at a local Stargate, retries without delay."""
    return StargateClientConfig(
        api_endpoint="http://stargate.test:8082",
        application_token="test-token",
        namespace="store",
        retry=RetryConfig(max_retries=3, initial_delay=0.0, max_delay=0.0),
    )


# ============================================================================
# Mock Document API
# ============================================================================

class MockDocumentApi:
    """
    Serves search pages from memory and records every request.

    Pages are (documents, next_page_state) pairs, selected by the
    page-state parameter: no parameter returns the first page, otherwise
    the page registered under that cursor.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.pages: dict[str | None, tuple[dict, str | None]] = {}
        self.failures: list[Callable[[httpx.Request], httpx.Response]] = []

    def add_page(self, documents: dict, next_state: str | None = None, state: str | None = None):
        self.pages[state] = (documents, next_state)

    def fail_next(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.failures.append(responder)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures:
            return self.failures.pop(0)(request)

        state = request.url.params.get("page-state")
        if state not in self.pages:
            return httpx.Response(404, text="")
        documents, next_state = self.pages[state]
        return httpx.Response(
            200,
            content=json.dumps({"pageState": next_state, "data": documents}),
            headers={"Content-Type": "application/json"},
        )


@pytest.fixture
def document_api() -> MockDocumentApi:
    return MockDocumentApi()


@pytest_asyncio.fixture
async def search_client(client_config, document_api):
    """DocumentSearchClient wired to the mock Document API."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(document_api))
    client = DocumentSearchClient(client_config, http_client=http_client)

    yield client

    await client.aclose()
    await http_client.aclose()
