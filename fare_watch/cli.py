"""Command line interface."""

import json
import logging
import sys
from pathlib import Path

import click

from fare_watch import main as app
from fare_watch.errors import SearchUsageError
from fare_watch.runner import NO_MONITORS
from fare_watch.search import search as search_fares

logger = logging.getLogger(__name__)

store_option = click.option(
    "--store",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Monitor store (defaults to MONITORS_PATH or data/monitors.json)",
)


@click.group()
def cli() -> None:
    """Fare collection and price monitors."""


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("mode")
@click.argument("args", nargs=-1)
def search(mode: str, args: tuple[str, ...]) -> None:
    """Collect fares for MODE and print the payload as JSON."""
    app.configure_logging(sys.stderr)
    try:
        payload = search_fares(mode, list(args))
    except SearchUsageError as e:
        raise click.UsageError(str(e)) from e
    except Exception as e:
        logger.debug("Search failed", exc_info=True)
        raise click.ClickException(str(e)) from e
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@cli.command()
@store_option
def check(store: Path | None) -> None:
    """Run every enabled monitor once and print the reports."""
    app.configure_logging(sys.stderr)
    result = app.run_check(store)
    click.echo(result.text if result.reports else NO_MONITORS)


@cli.command()
@store_option
def watch(store: Path | None) -> None:
    """Check monitors now and then on a fixed interval."""
    app.configure_logging()
    app.main(store)


if __name__ == "__main__":
    cli()
