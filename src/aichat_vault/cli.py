"""CLI entry point for aichat-vault."""

import logging

import click
import uvicorn

from .backends import get_all_providers, get_available_providers
from .config import get_database_path, get_log_level, get_search_path
from .database import VaultDatabase
from .importer import SessionImporter
from .push import push_sessions
from .search import SearchIndex


def _select_providers(names: tuple[str, ...]):
    """Available providers, narrowed to ``names`` when any are given."""
    providers = get_available_providers()
    if names:
        providers = [p for p in providers if p.name.value in names]
    return providers


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
def main(verbose: bool):
    """Import AI coding assistant sessions into a searchable local archive."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_provider_option = click.option(
    "--provider",
    "provider_names",
    multiple=True,
    type=click.Choice([p.name.value for p in get_all_providers()]),
    help="Only use this provider (repeatable).",
)


@main.command("import")
@_provider_option
@click.option("--vacuum/--no-vacuum", default=False, help="Compact both stores afterwards.")
def import_(provider_names: tuple[str, ...], vacuum: bool):
    """Scan local session logs and write them to both stores."""
    importer = SessionImporter(providers=_select_providers(provider_names))
    try:
        click.echo(f"Importing from: {', '.join(p.label for p in importer.providers) or 'nothing'}")
        stats = importer.import_all()
        importer.optimize_search()
        if vacuum:
            importer.vacuum()
        click.echo(
            f"{stats.imported} imported, {stats.skipped} skipped, "
            f"{stats.errored} errored ({stats.found} found)"
        )
    finally:
        importer.close()


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the API server."""
    click.echo(f"Starting aichat-vault on http://{host}:{port}")
    uvicorn.run("aichat_vault.server:app", host=host, port=port, reload=False)


@main.command()
@click.argument("url")
@_provider_option
def push(url: str, provider_names: tuple[str, ...]):
    """Send local sessions to the aichat-vault server at URL."""
    stats = push_sessions(url, _select_providers(provider_names))
    click.echo(f"{stats.imported} sent, {stats.skipped} skipped, {stats.errored} errored")
    if stats.errored:
        raise SystemExit(1)


@main.command("create-database")
@click.option("--reset", is_flag=True, help="Drop existing tables first.")
def create_database(reset: bool):
    """Create (or reset) the primary store and the search index."""
    db = VaultDatabase(get_database_path())
    index = SearchIndex(get_search_path())
    try:
        if reset:
            db.reset()
            index.reset()
        click.echo(f"Primary store: {db.path}")
        click.echo(f"Search index: {index.path}")
    finally:
        db.close()
        index.close()


@main.command()
def reindex():
    """Rebuild the search index from the primary store."""
    db = VaultDatabase(get_database_path())
    index = SearchIndex(get_search_path())
    try:
        count = index.rebuild_from(db)
        index.optimize()
        click.echo(f"Indexed {count} cards")
    finally:
        db.close()
        index.close()
