"""FastAPI application exposing sources, search and document lookup."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from docfeed.config import get_settings
from docfeed.context import AppContext
from docfeed.errors import (
    ConfigurationError,
    DocfeedError,
    DocumentNotFoundError,
    ProviderUnavailableError,
    SourceNotFoundError,
)
from docfeed.retrieval.models import SearchResult


# ── Request / Response schemas ────────────────────────────────────────
class SearchRequest(BaseModel):
    """Search across every source, or one source when ``source`` is set."""

    query: str = Field(min_length=1)
    source: str | None = None
    limit: int | None = Field(default=None, ge=1, le=100)


class SearchResponse(BaseModel):
    results: list[SearchResult]


class SourceSummary(BaseModel):
    id: str
    kind: str
    url: str
    status: str
    doc_count: int
    last_updated: datetime | None = None


class DocumentResponse(BaseModel):
    locator: str
    content: str


def _status_for(exc: DocfeedError) -> int:
    if isinstance(exc, (SourceNotFoundError, DocumentNotFoundError)):
        return 404
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, ProviderUnavailableError):
        return 503
    return 500


def create_app(context: AppContext | None = None) -> FastAPI:
    """Build the API.  Without *context* one is created from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        ctx = context or AppContext(get_settings())
        ctx.open()
        app.state.ctx = ctx
        try:
            yield
        finally:
            ctx.close()

    app = FastAPI(
        title="docfeed API",
        version="0.1.0",
        description="Semantic search over locally indexed documentation sources.",
        lifespan=lifespan,
    )

    @app.exception_handler(DocfeedError)
    async def _docfeed_error(request: Request, exc: DocfeedError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc),
            content={"detail": str(exc), "hint": exc.hint},
        )

    def get_context(request: Request) -> AppContext:
        return request.app.state.ctx

    # ── Routes ────────────────────────────────────────────────────────
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/sources", response_model=list[SourceSummary])
    def list_sources(ctx: AppContext = Depends(get_context)) -> list[SourceSummary]:
        """Registered documentation sources."""
        return [SourceSummary.model_validate(s.model_dump()) for s in ctx.list_sources()]

    @app.post("/search", response_model=SearchResponse)
    def search(request: SearchRequest, ctx: AppContext = Depends(get_context)) -> SearchResponse:
        """Semantic search; results are ordered by ascending distance."""
        return SearchResponse(results=ctx.search(request.query, source=request.source, limit=request.limit))

    @app.get("/documents", response_model=DocumentResponse)
    def get_document(
        locator: str = Query(..., description="Document URL or <source_id>:<relative path>"),
        ctx: AppContext = Depends(get_context),
    ) -> DocumentResponse:
        """Full markdown of the document a search result came from."""
        return DocumentResponse(locator=locator, content=ctx.get_document(locator))

    return app


app = create_app()
