"""Command line interface for notesync.

Example:
    notesync setup --token ghp_xxx --repo me/notes
    notesync import-file ~/notes/ideas.md
    notesync run
    notesync watch --interval 600
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from notesync.sync.change_detector import ChangeDetector
from notesync.sync.engine import create_sync_engine
from notesync.sync.local_store import DOCUMENTS, JsonFileStore
from notesync.sync.models import Document, SyncOutcome, SyncStatus, utcnow
from notesync.sync.scheduler import SyncScheduler
from notesync.sync.sync_config import NOTESYNC_DIR, SyncConfig

app = cyclopts.App(name="notesync", help="Sync local notes to a GitHub repository")

STATUS_STYLES = {
    SyncStatus.SUCCESS: "green",
    SyncStatus.SKIPPED: "dim",
    SyncStatus.FAILED: "red",
}

DataDir = Annotated[
    Path, cyclopts.Parameter(help="Directory holding config.json and store.json")
]
Verbose = Annotated[bool, cyclopts.Parameter(help="Enable debug logging")]


def _get_console() -> Console:
    """Get a Rich console for output."""
    return Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load(data_dir: Path) -> tuple[SyncConfig, JsonFileStore]:
    load_dotenv()
    config = SyncConfig.load(Path(data_dir) / "config.json")
    return config, JsonFileStore(data_dir)


def _not_configured(console: Console) -> None:
    console.print(
        "[red]Error: Sync not configured. Run 'notesync setup' first.[/red]"
    )


def _print_outcomes(console: Console, outcomes: list[SyncOutcome]) -> None:
    table = Table(title="Sync Results")
    table.add_column("Document", style="cyan")
    table.add_column("Status")
    table.add_column("Path", style="white")
    table.add_column("Error", style="red")
    for outcome in outcomes:
        style = STATUS_STYLES[outcome.status]
        table.add_row(
            outcome.document_id,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.path or "",
            outcome.error or "",
        )
    console.print(table)


@app.command
def setup(
    token: Annotated[str, cyclopts.Parameter(help="GitHub access token")],
    repo: Annotated[str, cyclopts.Parameter(help="Repository as owner/name")],
    *,
    branch: Annotated[str, cyclopts.Parameter(help="Branch to write to")] = "main",
    interval: Annotated[
        int, cyclopts.Parameter(help="Seconds between automatic syncs")
    ] = 30 * 60,
    data_dir: DataDir = NOTESYNC_DIR,
):
    """Configure the remote repository.

    Example:
        notesync setup --token ghp_xxx --repo me/notes --branch main
    """
    console = _get_console()
    config = SyncConfig(
        token=token, repo=repo, branch=branch, interval_seconds=interval
    )
    path = config.save(Path(data_dir) / "config.json")

    console.print(
        Panel(
            Text.assemble(
                ("✓ ", "green bold"),
                ("Sync configured\n\n", "green"),
                ("Repository: ", "cyan"),
                (f"{repo}@{branch}", "white"),
                ("\nConfig: ", "cyan"),
                (str(path), "white"),
            ),
            title="notesync",
            border_style="green",
        )
    )


@app.command
def status(*, data_dir: DataDir = NOTESYNC_DIR, verbose: Verbose = False):
    """Show configuration and which local documents are waiting to sync."""
    _setup_logging(verbose)
    console = _get_console()
    config, store = _load(data_dir)

    table = Table(title="Sync Status", show_header=False, box=None)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_row("Configured", "✓ Yes" if config.is_configured else "✗ No")
    for key, value in config.redacted().items():
        table.add_row(key, str(value))
    console.print(table)

    records = asyncio.run(store.get_all(DOCUMENTS))

    docs = Table(title="Local Documents")
    docs.add_column("ID", style="dim")
    docs.add_column("Name", style="cyan")
    docs.add_column("Last Synced")
    docs.add_column("Pending")
    detector = ChangeDetector()
    for record in records:
        document = Document.from_dict(record)
        pending = config.is_configured and detector.should_sync(document)
        docs.add_row(
            document.id,
            document.name,
            str(document.last_synced or "Never"),
            "[yellow]yes[/yellow]" if pending else "no",
        )
    console.print(docs)


@app.command
def run(*, data_dir: DataDir = NOTESYNC_DIR, verbose: Verbose = False):
    """Sync every changed document once."""
    _setup_logging(verbose)
    console = _get_console()
    config, store = _load(data_dir)
    if not config.is_configured:
        _not_configured(console)
        return 1

    async def _run():
        engine = create_sync_engine(config, store)
        try:
            return await engine.run()
        finally:
            await engine.close()

    with console.status("[cyan]Syncing...[/cyan]"):
        outcomes = asyncio.run(_run())
    _print_outcomes(console, outcomes)
    return 1 if any(o.status == SyncStatus.FAILED for o in outcomes) else 0


@app.command
def push(
    document: Annotated[str, cyclopts.Parameter(help="Document id or name")],
    *,
    data_dir: DataDir = NOTESYNC_DIR,
    verbose: Verbose = False,
):
    """Force sync one document now, even if it looks unchanged."""
    _setup_logging(verbose)
    console = _get_console()
    config, store = _load(data_dir)
    if not config.is_configured:
        _not_configured(console)
        return 1

    async def _push() -> Optional[SyncOutcome]:
        document_id = document
        if await store.get(DOCUMENTS, document_id) is None:
            for record in await store.get_all(DOCUMENTS):
                if record.get("name") == document:
                    document_id = record["id"]
                    break
        engine = create_sync_engine(config, store)
        try:
            return await engine.force_sync(document_id)
        finally:
            await engine.close()

    outcome = asyncio.run(_push())
    if outcome is None:
        console.print(f"[red]No document named {document!r}[/red]")
        return 1
    _print_outcomes(console, [outcome])
    return 0 if outcome.ok else 1


@app.command
def watch(
    *,
    interval: Annotated[
        Optional[int], cyclopts.Parameter(help="Seconds between runs")
    ] = None,
    data_dir: DataDir = NOTESYNC_DIR,
    verbose: Verbose = False,
):
    """Sync on a timer until interrupted."""
    _setup_logging(verbose)
    console = _get_console()
    config, store = _load(data_dir)
    if not config.is_configured:
        _not_configured(console)
        return 1

    async def _watch():
        scheduler = SyncScheduler(create_sync_engine(config, store), interval)
        scheduler.start(run_immediately=True)
        console.print(
            f"[cyan]Syncing to {config.repo} every {scheduler.interval}s "
            "(Ctrl+C to stop)[/cyan]"
        )
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.close()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")
    return 0


@app.command
def ls(*, data_dir: DataDir = NOTESYNC_DIR, verbose: Verbose = False):
    """List remote documents from this month and last month."""
    _setup_logging(verbose)
    console = _get_console()
    config, store = _load(data_dir)
    if not config.is_configured:
        _not_configured(console)
        return 1

    async def _ls():
        engine = create_sync_engine(config, store)
        try:
            return await engine.list_recent()
        finally:
            await engine.close()

    objects = asyncio.run(_ls())
    table = Table(title=f"{config.repo}@{config.branch}")
    table.add_column("Month", style="dim")
    table.add_column("Path", style="cyan")
    table.add_column("Size", justify="right")
    for obj in objects:
        table.add_row(obj.month or "", obj.path, str(obj.size))
    console.print(table)
    return 0


@app.command
def show(
    path: Annotated[str, cyclopts.Parameter(help="Remote path, e.g. 2024/03/notes.md")],
    *,
    data_dir: DataDir = NOTESYNC_DIR,
    verbose: Verbose = False,
):
    """Print the current remote content of a document."""
    _setup_logging(verbose)
    console = _get_console()
    config, store = _load(data_dir)
    if not config.is_configured:
        _not_configured(console)
        return 1

    async def _show():
        engine = create_sync_engine(config, store)
        try:
            return await engine.fetch(path)
        finally:
            await engine.close()

    try:
        content = asyncio.run(_show())
    except Exception as e:
        console.print(f"[red]Error reading {path}: {e}[/red]")
        return 1
    if content is None:
        console.print(f"[red]{path} does not exist[/red]")
        return 1
    console.print(content, markup=False, highlight=False)
    return 0


@app.command(name="import-file")
def import_file(
    file: Annotated[Path, cyclopts.Parameter(help="Text file to add or update")],
    *,
    name: Annotated[
        Optional[str], cyclopts.Parameter(help="Document name (default: file name)")
    ] = None,
    data_dir: DataDir = NOTESYNC_DIR,
):
    """Add a file to the local store, or update the document with the same name."""
    console = _get_console()
    store = JsonFileStore(data_dir)
    doc_name = name or file.name
    content = file.read_text(encoding="utf-8")

    async def _import() -> str:
        existing = next(
            (r for r in await store.get_all(DOCUMENTS) if r.get("name") == doc_name),
            None,
        )
        record = existing or {"id": uuid.uuid4().hex, "name": doc_name, "kind": "text"}
        record["content"] = content
        record["last_modified"] = utcnow().isoformat()
        await store.put(DOCUMENTS, record)
        return record["id"]

    document_id = asyncio.run(_import())
    console.print(f"[green]✓ Imported {doc_name} ({document_id})[/green]")
    return 0


def main():
    app()


if __name__ == "__main__":
    main()
