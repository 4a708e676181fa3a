"""Unit tests for the serving layer."""

from __future__ import annotations

import shutil
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from docfeed.config import Settings
from docfeed.context import AppContext
from docfeed.errors import (
    DocfeedError,
    EmbeddingError,
    InvalidSourceSpecError,
    ProviderUnavailableError,
    SourceNotFoundError,
)
from docfeed.ingestion.chunker import TokenCounter
from docfeed.serving.app import _status_for, create_app

if TYPE_CHECKING:
    from conftest import FakeEmbeddings, InMemoryVectorStore


def test_health_endpoint() -> None:
    """GET /health should return 200 with status ok."""
    from docfeed.serving.app import app

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.fixture()
def ctx(
    settings: Settings,
    fake_provider: FakeEmbeddings,
    memory_store: InMemoryVectorStore,
    word_counter: TokenCounter,
    docs_dir: Path,
) -> AppContext:
    shutil.copytree(docs_dir, settings.data_dir / "raw" / "docs-example-com")
    context = AppContext(settings, provider=fake_provider, store=memory_store, token_counter=word_counter)
    context.indexer.add_source("https://docs.example.com")
    return context


@pytest.fixture()
def client(ctx: AppContext) -> Iterator[TestClient]:
    with TestClient(create_app(ctx)) as c:
        yield c


def test_lifespan_opens_and_closes_the_store(ctx: AppContext, memory_store: InMemoryVectorStore) -> None:
    with TestClient(create_app(ctx)):
        assert memory_store.opened
    assert not memory_store.opened


def test_list_sources(client: TestClient) -> None:
    response = client.get("/sources")
    assert response.status_code == 200
    (source,) = response.json()
    assert source["id"] == "docs-example-com"
    assert source["status"] == "ready"
    assert source["doc_count"] == 4


def test_search(client: TestClient) -> None:
    response = client.post("/search", json={"query": "retries backoff jitter", "limit": 2})
    assert response.status_code == 200
    results = response.json()["results"]
    assert len(results) == 2
    assert results[0]["distance"] <= results[1]["distance"]
    assert results[0]["metadata"]["source_id"] == "docs-example-com"


def test_search_unknown_source_is_empty(client: TestClient) -> None:
    response = client.post("/search", json={"query": "x", "source": "nope"})
    assert response.json() == {"results": []}


@pytest.mark.parametrize("body", [{"query": ""}, {"query": "x", "limit": 0}, {}])
def test_search_validation(client: TestClient, body: dict) -> None:
    assert client.post("/search", json=body).status_code == 422


def test_get_document(client: TestClient) -> None:
    response = client.get("/documents", params={"locator": "docs-example-com:usage.md"})
    assert response.status_code == 200
    assert response.json()["content"].startswith("# Usage")


def test_missing_document_is_404_with_hint(client: TestClient) -> None:
    response = client.get("/documents", params={"locator": "https://nowhere.dev/x"})
    assert response.status_code == 404
    body = response.json()
    assert "not found" in body["detail"]
    assert body["hint"]


@pytest.mark.parametrize(
    ("exc", "status"),
    [
        (SourceNotFoundError("x"), 404),
        (InvalidSourceSpecError("bad"), 400),
        (ProviderUnavailableError("down"), 503),
        (EmbeddingError("boom"), 500),
        (DocfeedError("other"), 500),
    ],
)
def test_error_status_mapping(exc: DocfeedError, status: int) -> None:
    assert _status_for(exc) == status
