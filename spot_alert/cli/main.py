"""
CLI interface for SpotAlert.

Operator commands for the local database and for running the API server.
"""

import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from spot_alert.config.loader import SpotAlertConfig, load_config, load_config_from_env
from spot_alert.storage.repository import AlertRecorder, UsageLedger, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="YAML configuration file (defaults to environment variables)"
)
DB_OPTION = typer.Option(
    None,
    "--db",
    help="SQLite database path (overrides configuration)"
)


def _resolve_config(config_path: Optional[str], db_path: Optional[str] = None) -> SpotAlertConfig:
    """Load configuration from file or environment and apply CLI overrides."""
    config = load_config(config_path) if config_path else load_config_from_env()
    if db_path:
        config = replace(config, storage=replace(config.storage, db_path=db_path))
    return config


def configure_logging(level: str) -> None:
    """Route all log records through rich."""
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """SpotAlert CLI."""
    if ctx.invoked_subcommand is None:
        console.print("SpotAlert - Use --help to see available commands")


@app.command()
def status(config: Optional[str] = CONFIG_OPTION):
    """Show the resolved configuration."""
    try:
        cfg = _resolve_config(config)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="SpotAlert configuration")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("AWS region", cfg.aws.region)
    table.add_row("S3 bucket", cfg.aws.bucket)
    table.add_row("Face collection", cfg.aws.collection_id)
    table.add_row("Sender", cfg.email.from_address)
    table.add_row("Operator", cfg.email.operator_address)
    table.add_row("Match threshold", f"{cfg.face_match.threshold:g}%")
    table.add_row("Max faces", str(cfg.face_match.max_faces))
    table.add_row("Database", cfg.storage.db_path)
    table.add_row("Unique keys", "yes" if cfg.storage.unique_keys else "no")
    for name, ceiling in cfg.plans.ceilings.items():
        table.add_row(f"Plan {name}", _format_currency(ceiling))
    console.print(table)


@app.command()
def init(config: Optional[str] = CONFIG_OPTION, db: Optional[str] = DB_OPTION):
    """Initialize the SpotAlert database."""
    try:
        cfg = _resolve_config(config, db)
        initialize_schema(cfg.storage.db_path)
        console.print(f"[green]✓[/] Database initialized at {cfg.storage.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def serve(
    config: Optional[str] = CONFIG_OPTION,
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(3000, "--port", "-p", help="Bind port"),
):
    """Run the SpotAlert API server."""
    import uvicorn

    from spot_alert.api.app import create_app

    cfg = _resolve_config(config)
    configure_logging(cfg.log_level)
    uvicorn.run(create_app(cfg), host=host, port=port, log_config=None)


@app.command()
def usage(
    email: str = typer.Argument(..., help="Recipient to summarize"),
    config: Optional[str] = CONFIG_OPTION,
    db: Optional[str] = DB_OPTION,
):
    """Show month-to-date usage for a recipient."""
    try:
        cfg = _resolve_config(config, db)
        initialize_schema(cfg.storage.db_path)
        summary = UsageLedger(cfg.storage.db_path).month_to_date(
            email, datetime.now(timezone.utc)
        )
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]Usage for {summary.recipient}[/bold] ({summary.month})")
    if not summary.details:
        console.print("[dim]No usage recorded this month.[/]")
    else:
        table = Table()
        table.add_column("Channel")
        table.add_column("Count", justify="right")
        table.add_column("Total", justify="right")
        for detail in summary.details:
            table.add_row(detail.channel, str(detail.count), _format_currency(detail.total))
        console.print(table)
    console.print(f"Total: {_format_currency(summary.total_cost)}")


@app.command("reset-usage")
def reset_usage(
    config: Optional[str] = CONFIG_OPTION,
    db: Optional[str] = DB_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete every usage ledger entry."""
    if not yes and not typer.confirm("Delete all usage entries?"):
        console.print("Aborted.")
        sys.exit(EXIT_CODE_FAIL)
    try:
        cfg = _resolve_config(config, db)
        initialize_schema(cfg.storage.db_path)
        removed = UsageLedger(cfg.storage.db_path).reset()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Usage log reset ({removed} entries removed)")


@app.command("export-usage")
def export_usage(
    config: Optional[str] = CONFIG_OPTION,
    db: Optional[str] = DB_OPTION,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="CSV file (stdout if omitted)"),
):
    """Export the usage ledger as CSV."""
    try:
        cfg = _resolve_config(config, db)
        initialize_schema(cfg.storage.db_path)
        csv_text = UsageLedger(cfg.storage.db_path).export_csv()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if output is None:
        typer.echo(csv_text, nl=False)
    else:
        output.write_text(csv_text, encoding="utf-8")
        console.print(f"[green]✓[/] Usage exported to {output}")


@app.command()
def alerts(
    config: Optional[str] = CONFIG_OPTION,
    db: Optional[str] = DB_OPTION,
    limit: int = typer.Option(10, "--limit", "-n", help="Number of alerts to show"),
):
    """List the most recent alerts."""
    try:
        cfg = _resolve_config(config, db)
        initialize_schema(cfg.storage.db_path)
        records = AlertRecorder(cfg.storage.db_path).fetch_recent(limit)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not records:
        console.print("[dim]No alerts recorded.[/]")
        return

    table = Table(title="Recent alerts")
    table.add_column("#", justify="right")
    table.add_column("Time")
    table.add_column("Type")
    table.add_column("Image key")
    for record in records:
        style = "red" if record.alert_type == "unknown_face" else "green"
        table.add_row(
            str(record.id),
            record.timestamp.isoformat(),
            f"[{style}]{record.alert_type}[/]",
            record.image_key,
        )
    console.print(table)


def _format_currency(amount) -> str:
    """Format currency to the tenth of a cent."""
    return f"${float(amount):,.3f}"


if __name__ == "__main__":
    app()
