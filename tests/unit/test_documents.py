"""Tests for full-document lookup."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from docfeed.documents import get_document
from docfeed.errors import DocumentNotFoundError
from docfeed.sources import Source


@pytest.fixture()
def data_dir(tmp_path: Path, docs_dir: Path) -> Path:
    data = tmp_path / "data"
    shutil.copytree(docs_dir, data / "raw" / "docs-example-com")
    return data


@pytest.fixture()
def sources() -> list[Source]:
    return [Source(id="docs-example-com", url="https://docs.example.com", status="ready")]


def test_lookup_by_frontmatter_url(data_dir: Path, sources: list[Source]) -> None:
    text = get_document("https://docs.example.com/guide/install", sources, data_dir)
    assert text.startswith("---\ntitle: Installation")


def test_lookup_by_source_relative_path(data_dir: Path, sources: list[Source]) -> None:
    text = get_document("docs-example-com:usage.md", sources, data_dir)
    assert text.startswith("# Usage")


def test_path_escape_is_refused(data_dir: Path, sources: list[Source]) -> None:
    (data_dir / "secret.md").write_text("nope")
    with pytest.raises(DocumentNotFoundError):
        get_document("docs-example-com:../../secret.md", sources, data_dir)


@pytest.mark.parametrize(
    "locator",
    ["https://docs.example.com/missing", "docs-example-com:missing.md", "unknown-source:usage.md"],
)
def test_missing_documents(data_dir: Path, sources: list[Source], locator: str) -> None:
    with pytest.raises(DocumentNotFoundError) as excinfo:
        get_document(locator, sources, data_dir)
    assert excinfo.value.locator == locator


def test_source_indexed_from_an_explicit_root(tmp_path: Path, docs_dir: Path) -> None:
    source = Source(id="acme-widgets-main", kind="repo", owner="acme", repo="widgets", branch="main", root=docs_dir)
    data = tmp_path / "empty-data"

    assert get_document("acme-widgets-main:usage.md", [source], data).startswith("# Usage")
    assert "title: Installation" in get_document("https://docs.example.com/guide/install", [source], data)
