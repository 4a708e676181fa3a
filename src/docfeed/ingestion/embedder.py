"""Embedding generation: providers and the order-preserving batcher."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

import requests
from langchain_core.embeddings import Embeddings

from docfeed.errors import (
    DocfeedError,
    EmbeddingDimensionError,
    EmbeddingError,
    ProviderUnavailableError,
)

if TYPE_CHECKING:
    from docfeed.config import Settings

logger = logging.getLogger(__name__)


class OllamaEmbeddings(Embeddings):
    """Embeddings served by a local Ollama daemon over its HTTP API.

    Parameters
    ----------
    model:
        Ollama model tag, e.g. ``"mxbai-embed-large"``.
    base_url:
        Daemon address.
    timeout:
        Seconds allowed per embedding request.
    """

    def __init__(
        self,
        model: str = "mxbai-embed-large",
        *,
        base_url: str = "http://localhost:11434",
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def setup_hint(self) -> str:
        return (
            "Start Ollama with `ollama serve` and pull the model with "
            f"`ollama pull {self.model}`, then run the command again."
        )

    # -- Embeddings interface -------------------------------------------------

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        try:
            response = self._session.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
                timeout=self.timeout,
            )
        except requests.ConnectionError as exc:
            raise ProviderUnavailableError(
                f"Cannot connect to Ollama at {self.base_url}. Make sure Ollama is running.",
                hint=self.setup_hint,
            ) from exc

        if not response.ok:
            raise EmbeddingError(f"Ollama API error ({response.status_code}): {response.text}")
        return response.json()["embedding"]

    # -- health ---------------------------------------------------------------

    def list_models(self) -> list[str]:
        """Names of the models resident in the daemon."""
        response = self._session.get(f"{self.base_url}/api/tags", timeout=3)
        response.raise_for_status()
        return [m["name"] for m in response.json().get("models", [])]

    def check_health(self) -> bool:
        """``True`` when the daemon answers and the model is pulled."""
        try:
            names = self.list_models()
        except requests.RequestException:
            logger.warning("Ollama health-check failed", exc_info=True)
            return False
        return any(name == self.model or name.startswith(f"{self.model}:") for name in names)


def build_provider(settings: Settings) -> Embeddings:
    """Instantiate the embedding provider named by *settings*."""
    if settings.embedding_provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(model_name=settings.embedding_model)
    return OllamaEmbeddings(
        settings.embedding_model,
        base_url=settings.ollama_base_url,
        timeout=settings.ollama_timeout,
    )


class EmbeddingBatcher:
    """Turn ordered texts into ordered vectors through an :class:`Embeddings` provider.

    Texts are processed ``batch_size`` at a time.  Items of one batch run
    concurrently on at most ``max_concurrency`` threads; batches run one
    after another.  Output order always matches input order.

    Parameters
    ----------
    provider:
        Any LangChain ``Embeddings`` implementation.
    batch_size:
        Items per batch.
    max_concurrency:
        Threads used inside a batch.
    dimension:
        Expected vector size.  ``None`` adopts the size of the first vector.
    model_name:
        Recorded on collections so vectors from different models never mix.
    """

    def __init__(
        self,
        provider: Embeddings,
        *,
        batch_size: int = 5,
        max_concurrency: int = 5,
        dimension: int | None = None,
        model_name: str = "",
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.provider = provider
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency
        self.dimension = dimension
        self.model_name = model_name or _provider_model(provider)

    @classmethod
    def from_settings(cls, settings: Settings, provider: Embeddings | None = None) -> EmbeddingBatcher:
        return cls(
            provider or build_provider(settings),
            batch_size=settings.embed_batch_size,
            max_concurrency=settings.embed_concurrency,
            dimension=settings.embedding_dim or None,
            model_name=settings.embedding_model,
        )

    # -- health ---------------------------------------------------------------

    def check_health(self) -> bool:
        """Ask the provider whether it can serve requests.

        Providers without a health probe (in-process models) count as healthy.
        """
        probe = getattr(self.provider, "check_health", None)
        if probe is None:
            return True
        return bool(probe())

    def ensure_available(self) -> None:
        """Fail fast with an actionable error when the provider is not ready."""
        if not self.check_health():
            raise ProviderUnavailableError(
                f"Embedding provider is not available (model {self.model_name!r})",
                hint=getattr(self.provider, "setup_hint", None),
            )

    # -- embedding ------------------------------------------------------------

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*; ``result[i]`` belongs to ``texts[i]``.

        A failure aborts the batch it happens in.  Vectors of earlier
        batches are discarded with the exception; nothing is written here.
        """
        texts = list(texts)
        if not texts:
            return []

        vectors: list[list[float]] = []
        workers = min(self.max_concurrency, self.batch_size)
        t0 = time.monotonic()
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="embed") as pool:
            for batch_no, start in enumerate(range(0, len(texts), self.batch_size), 1):
                batch = texts[start : start + self.batch_size]
                try:
                    batch_vectors = list(pool.map(self.provider.embed_query, batch))
                except DocfeedError:
                    raise
                except Exception as exc:
                    raise EmbeddingError(
                        f"Embedding batch {batch_no} (items {start}-{start + len(batch) - 1}) failed: {exc}"
                    ) from exc

                vectors.extend(self._validated(v) for v in batch_vectors)
                logger.info("  embedded %d / %d", len(vectors), len(texts))

        logger.debug("Embedded %d texts in %.1fs", len(vectors), time.monotonic() - t0)
        return vectors

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query string."""
        return self.embed([text])[0]

    def _validated(self, vector: Sequence[Any]) -> list[float]:
        values = [float(x) for x in vector]
        if self.dimension is None:
            self.dimension = len(values)
        elif len(values) != self.dimension:
            raise EmbeddingDimensionError(
                f"Provider returned a {len(values)}-dim vector, expected {self.dimension}",
                hint="Check that embedding_dim matches the configured embedding_model.",
            )
        return values


def _provider_model(provider: Embeddings) -> str:
    # OllamaEmbeddings exposes ``model``, HuggingFaceEmbeddings ``model_name``.
    return getattr(provider, "model", "") or getattr(provider, "model_name", "") or ""
