"""docfeed CLI: index documentation sources and search them."""

from __future__ import annotations

import importlib.metadata
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from docfeed.config import get_settings
from docfeed.context import AppContext
from docfeed.errors import DocfeedError
from docfeed.logging_utils import configure_logging

console = Console()

app = typer.Typer(
    name="docfeed",
    help="Index documentation into a local vector store and search it.",
    add_completion=False,
)


@contextmanager
def _context() -> Iterator[AppContext]:
    """Open an :class:`AppContext` and turn docfeed errors into exit code 1."""
    try:
        settings = get_settings()
        configure_logging(settings.log_level)
        with AppContext(settings) as ctx:
            yield ctx
    except DocfeedError as exc:
        console.print(f"[red]✖ {exc}[/red]")
        if exc.hint:
            console.print(f"[dim]{exc.hint}[/dim]")
        raise typer.Exit(1) from exc


@app.command("add")
def add_cmd(
    spec: Annotated[str, typer.Argument(help="Docs URL, or owner/repo[@branch].")],
    path: Annotated[
        Optional[Path],
        typer.Option("--path", "-p", help="Directory holding the fetched markdown files."),
    ] = None,
    branch: Annotated[Optional[str], typer.Option("--branch", "-b", help="Repository branch.")] = None,
    max_depth: Annotated[Optional[int], typer.Option("--max-depth", help="Crawl depth (web).")] = None,
    max_pages: Annotated[Optional[int], typer.Option("--max-pages", help="Crawl page cap (web).")] = None,
) -> None:
    """Register a source and index its markdown files."""
    with _context() as ctx:
        report = ctx.indexer.add_source(
            spec, root=path, branch=branch, max_depth=max_depth, max_pages=max_pages
        )
        console.print(f"[green]✓ {report}[/green]")


@app.command("sync")
def sync_cmd(
    source_id: Annotated[str, typer.Argument(help="Source ID (see `docfeed list`).")],
    path: Annotated[
        Optional[Path],
        typer.Option("--path", "-p", help="Directory holding the fetched markdown files."),
    ] = None,
) -> None:
    """Re-index a registered source from scratch."""
    with _context() as ctx:
        report = ctx.indexer.index_source(source_id, root=path)
        console.print(f"[green]✓ {report}[/green]")


@app.command("remove")
def remove_cmd(
    source_id: Annotated[str, typer.Argument(help="Source ID (see `docfeed list`).")],
    keep_files: Annotated[
        bool, typer.Option("--keep-files", help="Leave the fetched markdown files on disk.")
    ] = False,
) -> None:
    """Delete a source, its collection and its files."""
    with _context() as ctx:
        source = ctx.indexer.remove_source(source_id, delete_files=not keep_files)
        console.print(f"[green]✓ Removed {source.label}[/green]")


@app.command("list")
def list_cmd() -> None:
    """Show registered sources."""
    with _context() as ctx:
        sources = ctx.list_sources()
        if not sources:
            console.print("[yellow]⚠ No sources indexed yet[/yellow]")
            console.print("[dim]Add one with: docfeed add <url | owner/repo>[/dim]")
            return

        table = Table("ID", "Source", "Status", "Chunks", "Last updated")
        for s in sources:
            updated = s.last_updated.strftime("%Y-%m-%d %H:%M") if s.last_updated else "-"
            table.add_row(s.id, s.label, s.status, str(s.doc_count), updated)
        console.print(table)


@app.command("search")
def search_cmd(
    query: Annotated[str, typer.Argument(help="Search text.")],
    source: Annotated[Optional[str], typer.Option("--source", "-s", help="Only search this source.")] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-n", min=1, help="Number of results.")] = None,
) -> None:
    """Semantic search across indexed sources."""
    with _context() as ctx:
        ctx.embedder.ensure_available()
        results = ctx.search(query, source=source, limit=limit)
        if not results:
            console.print("[yellow]⚠ No results found[/yellow]")
            return

        console.print(f"[bold]Found {len(results)} result(s):[/bold]\n")
        for i, hit in enumerate(results, 1):
            meta = hit.metadata
            heading = " › ".join(h for h in (meta.h1, meta.h2, meta.h3) if h) or meta.title
            console.print(f"[bold cyan][{i}] {meta.source_id} › {heading}[/bold cyan]")
            console.print(f"    [dim]{meta.locator}  distance={hit.distance:.4f}[/dim]")
            preview = hit.content[:150].replace("\n", " ")
            console.print(f"    {preview}{'…' if len(hit.content) > 150 else ''}\n", markup=False)


@app.command("get")
def get_cmd(locator: Annotated[str, typer.Argument(help="URL or <source_id>:<path>.")]) -> None:
    """Print the full markdown of a document."""
    with _context() as ctx:
        console.print(ctx.get_document(locator), markup=False, highlight=False)


@app.command("browse")
def browse_cmd(
    source_id: Annotated[str, typer.Argument(help="Source ID (see `docfeed list`).")],
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Chunks per page.")] = 20,
    page: Annotated[int, typer.Option("--page", "-p", min=1, help="Page to show.")] = 1,
) -> None:
    """Page through the chunks stored for a source."""
    with _context() as ctx:
        source = ctx.registry.require(source_id)
        total = ctx.store.count(source.id)
        console.print(f"[bold]Collection: [cyan]{source.id}[/cyan][/bold]")
        console.print(f"[dim]Total chunks: {total}[/dim]\n")
        if total == 0:
            console.print("[yellow]⚠ This collection is empty[/yellow]")
            return

        offset = (page - 1) * limit
        chunks = ctx.store.get_documents(source.id, offset=offset, limit=limit)
        if not chunks:
            last = (total + limit - 1) // limit
            console.print(f"[yellow]⚠ No more documents; the last page is {last}[/yellow]")
            return

        console.print(f"[bold]Documents {offset + 1}-{offset + len(chunks)} of {total}[/bold]\n")
        for i, chunk in enumerate(chunks, offset + 1):
            meta = chunk.metadata
            console.print(f"[bold cyan][{i}] {escape(meta.title or meta.file_path)}[/bold cyan]")
            if meta.url:
                console.print(f"  [dim]URL:[/dim]   {escape(meta.url)}")
            for label, heading in (("H1", meta.h1), ("H2", meta.h2), ("H3", meta.h3)):
                if heading:
                    console.print(f"  [dim]{label}:[/dim]    {escape(heading)}")
            preview = chunk.content[:150].replace("\n", " ")
            console.print(f"  {preview}{'…' if len(chunk.content) > 150 else ''}\n", markup=False)

        if offset + len(chunks) < total:
            console.print(f"[dim]Next page: docfeed browse {source.id} --page {page + 1}[/dim]")


@app.command("doctor")
def doctor_cmd() -> None:
    """Check the embedding provider, the vector store and the registry."""
    all_good = True
    with _context() as ctx:
        console.print("[bold]Embedding provider[/bold]")
        if ctx.embedder.check_health():
            console.print(f"  [green]✓ {ctx.settings.embedding_provider} is ready[/green]")
            console.print(f"  [dim]Model: {ctx.embedder.model_name}[/dim]")
        else:
            all_good = False
            console.print(f"  [red]✖ {ctx.settings.embedding_provider} is not available[/red]")
            hint = getattr(ctx.embedder.provider, "setup_hint", None)
            if hint:
                console.print(f"  [dim]{hint}[/dim]")

        console.print("\n[bold]Vector store[/bold]")
        if ctx.store.health_check():
            collections = ctx.store.list_collections()
            console.print(f"  [green]✓ Connected, {len(collections)} collection(s)[/green]")
        else:
            all_good = False
            console.print("  [red]✖ Vector store is not reachable[/red]")

        console.print("\n[bold]Sources[/bold]")
        sources = ctx.list_sources()
        ready = sum(1 for s in sources if s.status == "ready")
        if not sources:
            console.print("  [yellow]⚠ No sources indexed yet[/yellow]")
        else:
            console.print(f"  [green]✓ {ready}/{len(sources)} sources ready[/green]")
            for s in sources:
                mark = "✓" if s.status == "ready" else "⏳" if s.status != "error" else "✖"
                console.print(f"  [dim]{mark} {s.label} - {s.doc_count} chunks ({s.status})[/dim]")

    if not all_good:
        console.print("\n[bold red]Some issues need attention[/bold red]")
        raise typer.Exit(1)
    console.print("\n[bold green]Everything looks good![/bold green]")


@app.command("serve")
def serve_cmd(
    host: Annotated[str, typer.Option("--host", help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", help="Bind port.")] = 8765,
) -> None:
    """Run the REST API."""
    import uvicorn

    configure_logging(get_settings().log_level)
    uvicorn.run("docfeed.serving.app:app", host=host, port=port)


@app.command("version")
def version_cmd() -> None:
    """Show the installed version."""
    try:
        ver = importlib.metadata.version("docfeed")
    except importlib.metadata.PackageNotFoundError:
        ver = "dev"
    typer.echo(f"docfeed {ver}")


if __name__ == "__main__":
    app()
