"""CLI entry point for cursor-history."""

import logging
from pathlib import Path

import click
import uvicorn

from .backends import get_default_provider
from .config import get_export_path
from .export import export_snapshot
from .pipeline import load_snapshot


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """Browse Cursor chat history grouped by the project each chat belongs to."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _load():
    provider = get_default_provider()
    if provider is None:
        raise click.ClickException("No Cursor chat history found on this machine.")
    return load_snapshot(provider)


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the web API."""
    click.echo(f"Starting cursor-history on http://{host}:{port}")
    uvicorn.run("cursor_history.server:app", host=host, port=port, reload=False)


@main.command()
def workspaces():
    """List workspaces and how many chats each one holds."""
    snapshot = _load()
    for summary in snapshot.summaries():
        modified = summary.last_modified.strftime("%Y-%m-%d %H:%M") if summary.last_modified else "-"
        click.echo(f"{summary.conversation_count:>5}  {modified:<16}  {summary.name}  ({summary.id})")


@main.command()
@click.option("--since", type=click.Choice(["all", "last"]), default="all", help="Export everything, or only chats updated since the last export.")
@click.option("--out", "out_dir", type=click.Path(file_okay=False, path_type=Path), default=None, help="Output directory.")
def export(since: str, out_dir: Path | None):
    """Export chats to Markdown, grouped by date and workspace."""
    snapshot = _load()
    try:
        result = export_snapshot(snapshot, out_dir or get_export_path(), since=since)
    except OSError as e:
        raise click.ClickException(f"Export failed: {e}")
    click.echo(f"Exported {result.count} chat(s) to {result.out_dir}")
