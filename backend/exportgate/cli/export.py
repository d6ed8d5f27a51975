"""CLI tool for normalizing provider dumps and minting export tokens."""
import json
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import settings
from ..models import ExportFormat
from ..services.export_renderer import ExportRenderer
from ..services.normalizer import RecordNormalizer
from ..services.pack_catalog import PackCatalog
from ..services.tokens import issue_capability_token

app = typer.Typer(help="Export gate utilities")
console = Console()


def create_preview_table(items, limit: int = 5) -> Table:
    """Create a rich table showing the first normalized items."""
    table = Table(title=f"First {min(limit, len(items))} items", show_lines=False)
    table.add_column("#", style="dim", no_wrap=True)
    table.add_column("Titre", style="cyan")
    table.add_column("Prix", style="green", no_wrap=True)
    table.add_column("Localisation", style="white")

    for i, item in enumerate(items[:limit], 1):
        table.add_row(str(i), item.title[:50], item.price, item.location)
    return table


@app.command()
def normalize(
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Raw dataset dump (JSON list)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file"),
    export_format: ExportFormat = typer.Option(ExportFormat.EXCEL, "--format", "-f", help="excel or csv"),
    pack: Optional[str] = typer.Option(None, help="Pack id bounding the row count"),
):
    """
    Normalize a raw provider dataset and render it offline.

    Examples:

        exportgate normalize dataset.json

        exportgate normalize dataset.json --format csv --pack pack-pro -o listings.csv
    """
    try:
        records = json.loads(input_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not read {input_file}: {e}[/red]")
        raise typer.Exit(1)

    if not isinstance(records, list):
        console.print("[red]Expected a JSON list of records[/red]")
        raise typer.Exit(1)

    catalog = PackCatalog(settings.packs, settings.default_pack_id)
    resolved = catalog.resolve(pack)
    items = RecordNormalizer(settings.normalizer_config()).normalize_many(records)
    content = ExportRenderer(catalog, author=settings.export_author).render(items, resolved, export_format)

    target = output or input_file.with_suffix(export_format.extension)
    target.write_bytes(content)

    console.print(create_preview_table(items))
    console.print(Panel(
        f"[cyan]Records:[/cyan] {len(records)}\n"
        f"[cyan]Exported:[/cyan] {min(len(items), resolved.row_limit)} ({resolved.name}, limit {resolved.row_limit})\n"
        f"[cyan]Output:[/cyan] {target}",
        title="[green]Export Complete",
        border_style="green",
    ))


@app.command("issue-token")
def issue_token(
    session_id: str = typer.Argument(..., help="Session the token grants access to"),
    user_id: Optional[str] = typer.Option(None, help="Buyer id embedded in the token"),
    ttl_minutes: Optional[int] = typer.Option(None, help="Lifetime in minutes"),
):
    """
    Mint a signed capability token for one session.

    Examples:

        exportgate issue-token sess_V1StGXR8Z5jdHi6B --user-id 42
    """
    if not settings.capability_token_secret:
        console.print("[red]CAPABILITY_TOKEN_SECRET is not configured[/red]")
        raise typer.Exit(1)

    ttl = timedelta(minutes=ttl_minutes or settings.capability_token_ttl_minutes)
    token = issue_capability_token(session_id, settings.capability_token_secret, user_id=user_id, ttl=ttl)
    typer.echo(token)


if __name__ == "__main__":
    app()
