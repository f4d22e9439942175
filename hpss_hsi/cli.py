import logging
from typing import List, Optional

import typer

from hpss_hsi.client import HsiClient, Naming
from hpss_hsi.config import HsiConfig
from hpss_hsi.errors import HsiError
from hpss_hsi.factory import HsiFactory
from hpss_hsi.stat import Entry

app = typer.Typer(help="Inspect and manage HPSS through a persistent hsi session.")

_state = {"config_file": None}


def _client() -> HsiClient:
    config = HsiConfig.from_file(_state["config_file"])
    return HsiFactory(config).get_client()


def _format_entry(entry: Entry) -> str:
    kind = "d" if entry.is_directory else "-"
    mtime = entry.mtime.isoformat(sep=" ") if entry.mtime else "-"
    line = f"{kind}{entry.mode:04o} {entry.owner:<10} {entry.group:<10} {entry.size:>14} {mtime}  {entry.name}"
    for level in entry.levels:
        placement = f" {level.volume} {level.section}+{level.offset}" if level.volume else ""
        state = "complete" if level.complete else "partial"
        line += f"\n    level {level.level} {level.medium.value:<7} {level.bytes:>14} {state}{placement}"
    return line


@app.callback()
def main(
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to config.yml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log hsi traffic"),
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    _state["config_file"] = config_file


@app.command()
def ping() -> None:
    """Check whether HPSS answers."""
    ok = HsiFactory(HsiConfig.from_file(_state["config_file"])).ping()
    typer.echo("HPSS is up" if ok else "HPSS is not responding")
    raise typer.Exit(code=0 if ok else 1)


@app.command()
def stat(
    path: str,
    tape: bool = typer.Option(False, "--tape", "-X", help="Show storage levels"),
    mtime: bool = typer.Option(False, "--mtime", help="Show modification time"),
) -> None:
    """Show metadata for one path."""
    with _client() as client:
        typer.echo(_format_entry(client.stat(path, use_mtime=mtime, tape_info=tape)))


@app.command("ls")
def list_entries(
    path: str,
    pattern: Optional[str] = typer.Option(None, help="Regular expression for names"),
    recursive: bool = typer.Option(False, "--recursive", "-R"),
    tape: bool = typer.Option(False, "--tape", "-X", help="Show storage levels"),
    naming: Naming = typer.Option(Naming.NAME, help="How names are printed"),
) -> None:
    """List a directory."""
    with _client() as client:
        for entry in client.list_entries(path, pattern, recursive, naming, tape_info=tape):
            typer.echo(_format_entry(entry))


@app.command()
def exists(path: str) -> None:
    """Exit 0 if the path exists, 1 otherwise."""
    with _client() as client:
        found = client.exists(path)
    typer.echo("yes" if found else "no")
    raise typer.Exit(code=0 if found else 1)


@app.command()
def stage(paths: List[str]) -> None:
    """Stage files from tape to the disk cache."""
    with _client() as client:
        client.stage(paths)
    typer.echo(f"Staged {len(paths)} files")


@app.command()
def residency(path: str) -> None:
    """Show whether a file is on disk and on tape."""
    with _client() as client:
        typer.echo(f"on disk:            {client.is_on_disk(path)}")
        typer.echo(f"on tape:            {client.is_on_tape(path)}")
        typer.echo(f"migration finished: {client.migration_finished(path)}")


def run() -> None:
    try:
        app()
    except (HsiError, FileNotFoundError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(2)


if __name__ == "__main__":
    run()
