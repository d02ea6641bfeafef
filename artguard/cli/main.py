"""
artguard command line interface.

Check local files or remote URLs against the catalog, print image
fingerprints, and maintain the catalog database.
"""

import sys
from pathlib import Path
from typing import Optional, Tuple

import click
import uvicorn
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..analysis.content_hash import content_hash
from ..analysis.perceptual_hash import dhash_bytes
from ..core.duplicate_guard import DuplicateGuard
from ..core.errors import ArtGuardError
from ..core.types import Submission, Verdict, VerdictKind
from ..db import CatalogDB, init_db
from ..db.models import CatalogEntry
from ..shared import IMAGE_EXTENSIONS, is_image_file, setup_logging

console = Console()

VERDICT_STYLES = {
    VerdictKind.UNIQUE: "green",
    VerdictKind.EXACT_DUPLICATE: "red",
    VerdictKind.NEAR_DUPLICATE: "yellow",
}


def _is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def _print_verdict(source: str, verdict: Verdict) -> None:
    style = VERDICT_STYLES[verdict.kind]
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Source", source)
    table.add_row("Verdict", f"[{style}]{verdict.kind.value}[/{style}]")
    table.add_row("Content hash", verdict.content_hash)
    table.add_row("Fingerprint", verdict.fingerprint or "[dim]unavailable[/dim]")
    if verdict.is_duplicate:
        table.add_row("Matched entry", verdict.matched_entry_id or "[dim]unknown[/dim]")
        table.add_row("Owner", verdict.owner_id or "[dim]unknown[/dim]")
        table.add_row("Same owner", "yes" if verdict.same_owner else "no")
    if verdict.distance is not None:
        table.add_row("Distance", str(verdict.distance))
    if verdict.entry_id:
        table.add_row("New entry", verdict.entry_id)

    console.print(table)


@click.group()
@click.version_option(__version__, prog_name="artguard")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.option("-q", "--quiet", is_flag=True, help="Suppress all output except errors")
def cli(verbose: bool, quiet: bool) -> None:
    """artguard - duplicate guard for artwork uploads."""
    setup_logging(verbose=verbose, quiet=quiet)


@cli.command("init-db")
def init_db_command() -> None:
    """Create catalog tables."""
    init_db()
    console.print("[green]✓ Catalog database initialized[/green]")


@cli.command()
@click.argument("source")
@click.option("--owner", "owner_id", required=True, help="Identity of the uploader")
@click.option("--title", default=None, help="Artwork title (stored on submit)")
@click.option("--submit", is_flag=True, help="Persist the image when it is unique")
@click.option(
    "-t",
    "--threshold",
    type=click.IntRange(0, 64),
    default=None,
    help="Similarity threshold (0-64, lower = more strict)",
)
def check(
    source: str,
    owner_id: str,
    title: Optional[str],
    submit: bool,
    threshold: Optional[int],
) -> None:
    """Check SOURCE (file path or http(s) URL) against the catalog."""
    if _is_url(source):
        submission = Submission(owner_id=owner_id, url=source, title=title)
    else:
        path = Path(source)
        if not path.is_file():
            console.print(f"[red]Error: '{source}' is not a file or URL[/red]")
            sys.exit(2)
        submission = Submission(owner_id=owner_id, data=path.read_bytes(), title=title)

    try:
        with CatalogDB() as catalog:
            guard = DuplicateGuard(catalog, similarity_threshold=threshold)
            verdict = guard.submit(submission) if submit else guard.check(submission)
    except ArtGuardError as e:
        console.print(f"[red]Error ({e.kind}): {e.message}[/red]")
        sys.exit(1)

    _print_verdict(source, verdict)
    if verdict.is_duplicate:
        sys.exit(3)


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
def fingerprint(paths: Tuple[str, ...]) -> None:
    """Print content hash and dHash for image files or directories of images."""
    files = []
    for name in paths:
        path = Path(name)
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.is_file() and is_image_file(p)))
        else:
            files.append(path)

    table = Table(title="Image fingerprints")
    table.add_column("File", style="cyan")
    table.add_column("Content hash")
    table.add_column("dHash")

    failed = 0
    for path in files:
        data = path.read_bytes()
        try:
            digest = content_hash(data)
        except ArtGuardError as e:
            table.add_row(str(path), f"[red]{e.message}[/red]", "")
            failed += 1
            continue
        table.add_row(str(path), digest, dhash_bytes(data) or "[dim]unavailable[/dim]")

    console.print(table)
    if failed:
        sys.exit(1)


@cli.command()
@click.option(
    "--images-dir",
    required=True,
    type=click.Path(exists=True, file_okay=False),
    help="Directory holding stored images named <entry_id>.<ext>",
)
@click.option("--limit", type=int, default=None, help="Maximum entries to process")
def backfill(images_dir: str, limit: Optional[int]) -> None:
    """Compute fingerprints for catalog entries that lack one."""
    root = Path(images_dir)

    def load_bytes(entry: CatalogEntry) -> Optional[bytes]:
        for ext in sorted(IMAGE_EXTENSIONS):
            candidate = root / f"{entry.id}{ext}"
            if candidate.is_file():
                return candidate.read_bytes()
        return None

    with CatalogDB() as catalog:
        stats = catalog.backfill_fingerprints(load_bytes, dhash_bytes, limit=limit)

    console.print(
        f"[green]✓ {stats['updated']} updated[/green], "
        f"[yellow]{stats['missing']} missing[/yellow], "
        f"[red]{stats['failed']} failed[/red]"
    )


@cli.command()
@click.option("--host", default="0.0.0.0", help="Host to bind to")
@click.option("--port", default=8000, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the upload API server."""
    uvicorn.run(
        "artguard.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    cli()
