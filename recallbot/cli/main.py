# recallbot/cli/main.py
"""RecallBot - chat history recall CLI."""

import signal
import threading
from pathlib import Path
from typing import Optional, List

import typer
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn

from ..core.config import ConfigLoader
from ..core.logging_setup import setup_logging
from ..core.registry import ComponentRegistry
from ..core.system import RecallSystem, DEFAULT_STORAGE
from ..importers.telegram import TelegramJsonImporter
from ..models.search import SearchConfidence, SearchOptions

app = typer.Typer(
    name="recallbot",
    help="RecallBot - answer questions from chat history",
    add_completion=False,
)
console = Console()

CONFIDENCE_STYLE = {
    SearchConfidence.HIGH: "bold green",
    SearchConfidence.MEDIUM: "yellow",
    SearchConfidence.LOW: "red",
    SearchConfidence.NONE: "dim",
}
IMPORT_CHUNK = 500


def _load(config: Optional[Path], level: Optional[str] = "WARNING") -> dict:
    """Load config and set up logging; level=None keeps the configured level."""
    cfg = ConfigLoader.load(config)
    log_config = dict(cfg.get('logging') or {})
    if level:
        log_config['level'] = level
    setup_logging(console=console, config=log_config)
    return cfg


def _open_store(cfg: dict):
    section = (cfg.get('components') or {}).get('storage', DEFAULT_STORAGE)
    store = ComponentRegistry().create_component('storage', section)
    store.initialize()
    return store


@app.command()
def init(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Custom config file"),
):
    """
    Create the database schema.

    Examples:
        recallbot init
        recallbot init -c config/local.yaml
    """
    try:
        cfg = _load(config)
        store = _open_store(cfg)
        stats = store.get_statistics()
        store.close()

        console.print("[bold green]✓ Database ready[/bold green]")
        console.print(f"  Messages: {stats['total_messages']}")

    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command("import")
def import_export(
    source: Path = typer.Argument(..., help="Telegram export directory, result.json or ZIP"),
    chat_id: Optional[int] = typer.Option(None, "--chat-id", help="Override the chat id from the export"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Custom config file"),
):
    """
    Import a Telegram Desktop JSON export.

    Messages are stored without embeddings; run `recallbot index` afterwards.

    Examples:
        recallbot import ~/Downloads/ChatExport_2024-05-01
        recallbot import result.json --chat-id -1001234567890
    """
    if not source.exists():
        console.print(f"[red]Error:[/red] Source not found: {source}")
        raise typer.Exit(1)

    try:
        cfg = _load(config, None)
        importer_config = {'chat_id': chat_id} if chat_id is not None else {}
        importer = TelegramJsonImporter(config=importer_config)

        metadata = importer.get_metadata(source)
        console.print(f"\n[bold cyan]Importing:[/bold cyan] {source}")
        console.print(f"  Chats: {metadata['total_chats']}, messages: {metadata['total_messages']}")

        store = _open_store(cfg)
        saved = 0
        chunk = []

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Saving messages...", total=None)

            for record in importer.import_data(source):
                chunk.append(record)
                if len(chunk) >= IMPORT_CHUNK:
                    saved += store.save_messages(chunk)
                    chunk = []
                    progress.update(task, description=f"Saved {saved} messages...")

            if chunk:
                saved += store.save_messages(chunk)

        store.close()
        console.print(f"\n[bold green]✓ Imported {saved} messages[/bold green]")

    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def search(
    question: str = typer.Argument(..., help="Question to answer from history"),
    chat_id: int = typer.Option(..., "--chat", help="Chat to search in"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of results"),
    context_windows: bool = typer.Option(False, "--context-windows", help="Also search sliding-window embeddings"),
    show_context: bool = typer.Option(False, "--show-context", help="Print the assembled dialog context"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Custom config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Fusion search over one chat.

    Examples:
        recallbot search "для чего ты создан?" --chat -1001234567890
        recallbot search "когда переезд" --chat 42 --show-context
    """
    try:
        cfg = _load(config, "DEBUG" if verbose else "WARNING")
        system = RecallSystem.from_config(cfg)

        options = SearchOptions(result_limit=limit, search_context_windows=context_windows)
        response = system.search(question, chat_id, options)

        style = CONFIDENCE_STYLE[response.confidence]
        console.print(
            f"\n[{style}]Confidence: {response.confidence.name}[/{style}] "
            f"[dim]({response.confidence_reason}, {response.total_time_ms:.0f}ms)[/dim]"
        )
        if response.query_variations:
            console.print(f"[dim]Variants: {' | '.join(response.query_variations)}[/dim]")
        if response.keywords:
            console.print(f"[dim]Keywords: {' '.join(response.keywords)}[/dim]")

        if not response.results:
            console.print("[yellow]No results found.[/yellow]")
            system.close()
            return

        table = Table(title=f"{len(response.results)} results")
        table.add_column("#", style="cyan", justify="right")
        table.add_column("Msg", justify="right")
        table.add_column("RRF", justify="right")
        table.add_column("Sim", justify="right")
        table.add_column("Lists", justify="right")
        table.add_column("Text")

        for i, result in enumerate(response.results, 1):
            snippet = " ".join(result.chunk_text.split())
            if len(snippet) > 120:
                snippet = snippet[:120] + "..."
            table.add_row(
                str(i),
                str(result.message_id),
                f"{result.fused_score:.4f}",
                f"{result.similarity:.3f}",
                str(result.matched_query_count),
                snippet,
            )
        console.print(table)

        if show_context and response.should_answer:
            console.print()
            console.print(system.build_context(response, chat_id), markup=False, highlight=False)

        system.close()

    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def context(
    chat_id: int = typer.Argument(..., help="Chat id"),
    message_ids: List[int] = typer.Argument(..., help="Message ids to build windows around"),
    window: Optional[int] = typer.Option(None, "--window", "-w", help="Messages before/after each hit"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Custom config file"),
):
    """
    Show merged conversation windows around messages.

    Examples:
        recallbot context 42 1001 1003 1050 --window 3
    """
    try:
        cfg = _load(config)
        system = RecallSystem.from_config(cfg)

        windows = system.get_merged_context_windows(chat_id, message_ids, window)
        if not windows:
            console.print("[yellow]No messages found.[/yellow]")
        else:
            console.print(system.assembler.build_context(windows), markup=False, highlight=False)

        system.close()

    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def index(
    loop: bool = typer.Option(False, "--loop", help="Keep indexing in the background until Ctrl+C"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Custom config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Build message and context-window embeddings.

    Examples:
        recallbot index
        recallbot index --loop
    """
    try:
        cfg = _load(config, "DEBUG" if verbose else None)
        system = RecallSystem.from_config(cfg)
        stop_event = threading.Event()

        if loop:
            signal.signal(signal.SIGINT, lambda *_: stop_event.set())
            console.print("[bold cyan]Background indexing, Ctrl+C to stop[/bold cyan]")
            system.background_indexer().run(stop_event)
        else:
            has_more = system.run_indexing_tick(stop_event)
            if has_more:
                console.print("[yellow]More work remains, run again or use --loop[/yellow]")
            else:
                console.print("[bold green]✓ Index is up to date[/bold green]")

        _print_indexing_stats(system)
        system.close()

    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        raise typer.Exit(1)


def _print_indexing_stats(system: RecallSystem) -> None:
    table = Table(title="Indexing")
    table.add_column("Handler", style="cyan")
    table.add_column("Indexed", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Progress", justify="right", style="green")
    table.add_column("Batches", justify="right")
    table.add_column("Errors", justify="right")

    for name, stats in system.get_indexing_stats().items():
        metrics = system.metrics.get(name)
        table.add_row(
            name,
            str(stats.indexed),
            str(stats.total),
            f"{stats.progress_percent:.1f}%",
            str(metrics.batches_processed),
            str(sum(metrics.errors.values())),
        )
    console.print(table)


@app.command()
def stats(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Custom config file"),
):
    """Show database statistics."""
    try:
        cfg = _load(config)
        store = _open_store(cfg)
        stats = store.get_statistics()
        message_stats = store.get_embedding_stats()
        context_stats = store.get_context_stats()
        store.close()

        table = Table(title="Database Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Total Messages", str(stats['total_messages']))
        table.add_row("Total Chats", str(stats['total_chats']))
        table.add_row("Message Embeddings", str(stats['message_embeddings']))
        table.add_row("Question Embeddings", str(stats['question_embeddings']))
        table.add_row("Context Embeddings", str(stats['context_embeddings']))
        table.add_row("News Dumps", str(stats['news_dumps']))
        table.add_row("Database Size", f"{stats['size_mb']:.2f} MB")
        table.add_row("", "")
        table.add_row("[bold]Indexing[/bold]", "")
        table.add_row("  Messages", f"{message_stats.indexed}/{message_stats.total} ({message_stats.progress_percent:.1f}%)")
        table.add_row("  Chats (context)", f"{context_stats.indexed}/{context_stats.total} ({context_stats.progress_percent:.1f}%)")

        console.print(table)

    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
