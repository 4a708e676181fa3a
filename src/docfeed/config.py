"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings, populated from ``DOCFEED_*`` env vars or a .env file."""

    # Storage layout
    data_dir: Path = Field(default=Path("data"), description="Root for raw docs, repos and the vector DB")
    registry_path: Path = Field(
        default=Path("feedd.config.json"),
        description="JSON file holding the source registry",
    )

    # Vector store
    vector_backend: Literal["persistent", "http"] = "persistent"
    chroma_path: Path | None = Field(
        default=None,
        description="Directory of the embedded Chroma store. Defaults to <data_dir>/vectordb.",
    )
    chroma_host: str = "localhost"
    chroma_port: int = 8000

    # Embedding
    embedding_provider: Literal["ollama", "huggingface"] = "ollama"
    embedding_model: str = "mxbai-embed-large"
    embedding_dim: int = Field(default=1024, ge=0, description="Expected vector size; 0 infers it")
    ollama_base_url: str = "http://localhost:11434"
    ollama_timeout: float = 60.0
    embed_batch_size: int = Field(default=5, ge=1)
    embed_concurrency: int = Field(default=5, ge=1)

    # Chunking (sizes in model tokens)
    chunk_size: int = Field(default=1800, ge=1)
    chunk_overlap: int = Field(default=270, ge=0)
    min_chunk_chars: int = Field(default=50, ge=0)

    # Retrieval
    search_limit: int = Field(default=5, ge=1)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="DOCFEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_overlap(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self

    @property
    def vectordb_path(self) -> Path:
        return self.chroma_path or self.data_dir / "vectordb"

    @property
    def raw_dir(self) -> Path:
        return self.data_dir / "raw"

    @property
    def repos_dir(self) -> Path:
        return self.data_dir / "repos"


def get_settings(**overrides: object) -> Settings:
    """Build a fresh :class:`Settings`; keyword overrides win over the environment."""
    return Settings(**overrides)  # type: ignore[arg-type]
