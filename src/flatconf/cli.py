"""flatconf CLI: inspect and watch configuration files.

Commands:
    flatconf dump FILES...          print every entry (flat, typed or JSON)
    flatconf get KEY FILES...       print one value
    flatconf keys FILES...          list every flat key
    flatconf stats FILES...         summary table
    flatconf watch FILES...         reload on change until interrupted
"""

from __future__ import annotations

import logging
import threading

import click

from flatconf.config import Config
from flatconf.errors import FlatconfError

_LOG_FORMAT = "%(asctime)s %(name)s %(message)s"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open(files: tuple[str, ...], *, watch: bool = False) -> Config:
    cfg = Config(watch=watch)
    try:
        cfg.open(*files)
    except FlatconfError as exc:
        cfg.close()
        raise click.ClickException(str(exc)) from exc
    return cfg


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="flatconf")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level")
def cli(verbose: bool) -> None:
    """flatconf: flat configuration store."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=_LOG_FORMAT)


# ---------------------------------------------------------------------------
# flatconf dump
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("files", nargs=-1, required=True)
@click.option(
    "--format",
    "fmt",
    default="flat",
    show_default=True,
    type=click.Choice(["flat", "typed", "json"]),
    help="flat: key = value lines; typed: values with detected types; json: JSON object",
)
def dump(files: tuple[str, ...], fmt: str) -> None:
    """Print every entry loaded from FILES (later files win).

    \b
    flatconf dump app.conf
    flatconf dump defaults.json local.conf --format json
    """
    with _open(files) as cfg:
        if fmt == "json":
            click.echo(cfg.get_all_json())
            return
        values = cfg.get_all() if fmt == "flat" else cfg.get_all_typed()
        for key in sorted(values):
            value = values[key]
            shown = value if fmt == "flat" else f"{value!r}  ({type(value).__name__})"
            click.echo(f"{key} = {shown}")


# ---------------------------------------------------------------------------
# flatconf get
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("key")
@click.argument("files", nargs=-1, required=True)
@click.option("--default", "-d", "default", default=None, help="Printed when KEY is missing or empty")
def get(key: str, files: tuple[str, ...], default: str | None) -> None:
    """Print the value of KEY."""
    with _open(files) as cfg:
        value = cfg.get_string(key)
        if not value:
            if default is None:
                raise click.ClickException(f"Key not found: {key}")
            value = default
        click.echo(value)


# ---------------------------------------------------------------------------
# flatconf keys
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("files", nargs=-1, required=True)
@click.option("--prefix", "-p", default="", help="Only keys starting with this prefix")
def keys(files: tuple[str, ...], prefix: str) -> None:
    """List every flat key."""
    with _open(files) as cfg:
        for name in cfg.get_all_keys():
            if name.startswith(prefix):
                click.echo(name)


# ---------------------------------------------------------------------------
# flatconf stats
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("files", nargs=-1, required=True)
def stats(files: tuple[str, ...]) -> None:
    """Show what FILES load to: entry count, sources, top-level sections."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as _pkg_version

    from rich.console import Console
    from rich.table import Table

    with _open(files) as cfg:
        info = cfg.stats()
        sections = sorted({key.split(".", 1)[0] for key in cfg.get_all_keys()})

    try:
        ver = _pkg_version("flatconf")
    except PackageNotFoundError:
        ver = "unknown"

    table = Table(title="flatconf", show_header=True, header_style="bold")
    table.add_column("Metric", style="dim", no_wrap=True)
    table.add_column("Value", justify="right")
    table.add_row("Version", ver)
    for path in files:
        table.add_row("Source", path)
    table.add_row("Entries", str(info.entries))
    table.add_row("Sections", ", ".join(sections) or "[dim]none[/dim]")
    Console().print(table)


# ---------------------------------------------------------------------------
# flatconf watch
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("files", nargs=-1, required=True)
@click.option("--interval", default=1.0, show_default=True, help="Polling interval when inotify is unavailable")
def watch(files: tuple[str, ...], interval: float) -> None:
    """Load FILES and report every reload until interrupted."""
    logging.getLogger("flatconf").setLevel(logging.INFO)
    cfg = Config(watch=True, poll_interval=interval)
    try:
        cfg.open(*files)
    except FlatconfError as exc:
        cfg.close()
        raise click.ClickException(str(exc)) from exc

    def _report() -> None:
        click.echo(f"reloaded: {cfg.stats().entries} entries")

    cfg.set_on_reload(_report)
    info = cfg.stats()
    click.echo(f"watching {info.watched_files} file(s), {info.entries} entries  (Ctrl-C to stop)")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        click.echo("stopped")
    finally:
        cfg.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
