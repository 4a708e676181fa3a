"""Unit tests for source identity and the JSON registry."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from docfeed.errors import DuplicateSourceError, InvalidSourceSpecError, SourceNotFoundError
from docfeed.sources import (
    Source,
    SourceRegistry,
    looks_like_url,
    parse_repo_spec,
    source_id_from_repo,
    source_id_from_url,
)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://docs.python.org/3/library/asyncio.html", "docs-python-org-3"),
        ("https://www.example.com/guide/start", "example-com-guide"),
        ("https://react.dev", "react-dev"),
        ("https://Docs.Example.COM/API/", "docs-example-com-api"),
    ],
)
def test_source_id_from_url(url: str, expected: str) -> None:
    assert source_id_from_url(url) == expected


def test_source_id_from_unparseable_url() -> None:
    assert source_id_from_url("not a url") == "not-a-url"


@pytest.mark.parametrize(
    ("spec", "expected"),
    [
        ("facebook/react", ("facebook", "react", "main")),
        ("facebook/react@v18.2.0", ("facebook", "react", "v18.2.0")),
    ],
)
def test_parse_repo_spec(spec: str, expected: tuple[str, str, str]) -> None:
    assert parse_repo_spec(spec) == expected


@pytest.mark.parametrize("spec", ["react", "/react", "facebook/", "a/b/c"])
def test_parse_repo_spec_rejects_malformed(spec: str) -> None:
    with pytest.raises(InvalidSourceSpecError):
        parse_repo_spec(spec)


def test_source_id_from_repo() -> None:
    assert source_id_from_repo("facebook", "react", "v18.2.0") == "facebook-react-v18-2-0"


def test_looks_like_url() -> None:
    assert looks_like_url("https://x.dev")
    assert not looks_like_url("owner/repo")


def test_root_dir_layout(tmp_path: Path) -> None:
    web = Source(id="react-dev", url="https://react.dev")
    repo = Source(id="a-b-dev", kind="repo", owner="a", repo="b", branch="dev")
    assert web.root_dir(tmp_path) == tmp_path / "raw" / "react-dev"
    assert repo.root_dir(tmp_path) == tmp_path / "repos" / "a" / "b" / "dev"
    assert repo.label == "a/b@dev"


def test_content_dir_prefers_explicit_root(tmp_path: Path) -> None:
    source = Source(id="react-dev", url="https://react.dev")
    assert source.content_dir(tmp_path) == source.root_dir(tmp_path)
    pinned = source.model_copy(update={"root": tmp_path / "checkout"})
    assert pinned.content_dir(tmp_path) == tmp_path / "checkout"


class TestSourceRegistry:
    @pytest.fixture()
    def registry(self, tmp_path: Path) -> SourceRegistry:
        return SourceRegistry(tmp_path / "feedd.config.json")

    def test_missing_file_is_created_empty(self, registry: SourceRegistry) -> None:
        assert registry.list_sources() == []
        assert json.loads(registry.path.read_text()) == {"sources": []}

    def test_add_web_defaults(self, registry: SourceRegistry) -> None:
        source = registry.add_web("https://react.dev/learn")
        assert source.id == "react-dev-learn"
        assert source.status == "pending"
        assert (source.max_depth, source.max_pages) == (2, 100)

    def test_add_repo(self, registry: SourceRegistry) -> None:
        source = registry.add_repo("facebook", "react", "main")
        assert source.id == "facebook-react-main"
        assert source.url == "https://github.com/facebook/react"

    def test_duplicate_is_rejected(self, registry: SourceRegistry) -> None:
        registry.add_web("https://react.dev")
        with pytest.raises(DuplicateSourceError):
            registry.add_web("https://react.dev")

    def test_persists_across_instances(self, registry: SourceRegistry) -> None:
        registry.add_web("https://react.dev")
        reopened = SourceRegistry(registry.path)
        assert [s.id for s in reopened.list_sources()] == ["react-dev"]

    def test_update(self, registry: SourceRegistry) -> None:
        registry.add_web("https://react.dev")
        updated = registry.update("react-dev", status="ready", doc_count=12)
        assert (updated.status, updated.doc_count) == ("ready", 12)
        assert registry.require("react-dev").doc_count == 12

    def test_root_survives_a_reload(self, registry: SourceRegistry, tmp_path: Path) -> None:
        registry.add_web("https://react.dev")
        registry.update("react-dev", root=tmp_path / "site")
        assert SourceRegistry(registry.path).require("react-dev").root == tmp_path / "site"

    def test_update_validates(self, registry: SourceRegistry) -> None:
        registry.add_web("https://react.dev")
        with pytest.raises(ValueError):
            registry.update("react-dev", status="bogus")

    def test_remove(self, registry: SourceRegistry) -> None:
        registry.add_web("https://react.dev")
        registry.remove("react-dev")
        assert registry.get("react-dev") is None

    def test_unknown_ids(self, registry: SourceRegistry) -> None:
        with pytest.raises(SourceNotFoundError):
            registry.require("nope")
        with pytest.raises(SourceNotFoundError):
            registry.update("nope", status="ready")
        with pytest.raises(SourceNotFoundError):
            registry.remove("nope")
