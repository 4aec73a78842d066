"""
Command-line interface for blobctl.

Usage:
    blobctl [--config PATH] [--debug] COMMAND [OPTIONS]

Commands:
    create-container, delete-container, upload, download, list
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .client import StorageClient
from .config import DEFAULT_CONFIG_FILE, AppConfig, load_config
from .exceptions import StorageError
from .logging import setup_logging


class CliState:
    """Per-invocation state; config and client are built on first use."""

    def __init__(self, config_path: str, debug: bool, log_json: bool) -> None:
        self.config_path = config_path
        self.debug = debug
        self.log_json = log_json
        self._app_config: Optional[AppConfig] = None
        self._client: Optional[StorageClient] = None

    @property
    def app_config(self) -> AppConfig:
        if self._app_config is None:
            try:
                self._app_config = load_config(self.config_path)
            except StorageError as exc:
                raise click.ClickException(str(exc)) from exc
            self.debug = self.debug or self._app_config.debug
            setup_logging(debug=self.debug, json_output=self.log_json)
        return self._app_config

    @property
    def client(self) -> StorageClient:
        if self._client is None:
            storage = self.app_config.storage
            self._client = StorageClient(storage)
        return self._client


pass_state = click.make_pass_decorator(CliState)


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat(sep=" ", timespec="seconds")
    return str(value)


def _print_table(rows: Iterable[dict], title: str) -> None:
    rows = list(rows)
    console = Console()
    if not rows:
        console.print(f"{title}: nothing found")
        return

    table = Table(title=title)
    for column in rows[0]:
        table.add_column(column, overflow="fold")
    for row in rows:
        table.add_row(*(_cell(value) for value in row.values()))
    console.print(table)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(__version__, "-v", "--version", help="Show the CLI version and exit.")
@click.option(
    "-c",
    "--config",
    "config_path",
    envvar="BLOBCTL_CONFIG",
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Path to YAML configuration file",
)
@click.option("-d", "--debug", is_flag=True, default=False, help="Enable debug output")
@click.option("--log-json", is_flag=True, default=False, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config_path: str, debug: bool, log_json: bool):
    """Work with containers and files in S3-compatible object storage."""
    setup_logging(debug=debug, json_output=log_json)
    ctx.obj = CliState(config_path, debug, log_json)


@cli.command("create-container")
@click.option("-n", "--name", required=True, help="The name of the container")
@pass_state
def create_container(state: CliState, name: str):
    """Creates container in object storage."""
    try:
        result = state.client.create_container(name)
    except StorageError as exc:
        raise click.ClickException(str(exc)) from exc

    if result.created:
        click.echo(f"container {name} created")
    else:
        click.echo(f"container {name} already exists")


@cli.command("delete-container")
@click.option("-n", "--name", required=True, help="The name of the container")
@pass_state
def delete_container(state: CliState, name: str):
    """Deletes container from object storage."""
    try:
        state.client.delete_container(name)
    except StorageError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"container {name} deleted")


@cli.command()
@click.option("-n", "--name", required=True, help="The name of the container")
@click.option("-f", "--file", "file_path", required=True, help="Path of file to upload")
@click.option("-b", "--blob", required=True, help="Name of blob (folder) to upload to")
@pass_state
def upload(state: CliState, name: str, file_path: str, blob: str):
    """Uploads file to object storage at the given path within the container."""
    try:
        state.client.upload(name, file_path, blob)
    except (StorageError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"uploaded {file_path} to {name}/{blob}")


@cli.command()
@click.option("-n", "--name", required=True, help="Name of the container")
@click.option("-b", "--blob", required=True, help="Name of blob (folder)")
@click.option("-f", "--file", "file_name", default=None, help="File to download")
@click.option(
    "-o",
    "--output",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory to store downloaded file(s)",
)
@pass_state
def download(state: CliState, name: str, blob: str, file_name: Optional[str], output: str):
    """Downloads files from object storage. Drop -f to download every file in the config file list."""
    if file_name:
        try:
            state.client.download(name, blob, file_name, output)
        except StorageError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"downloaded {name}/{blob}/{file_name} to {output}")
        return

    try:
        report = state.client.download_all(name, blob, output, state.app_config.file_list)
    except StorageError as exc:
        raise click.ClickException(str(exc)) from exc

    _print_table(
        (
            {
                "file": outcome.name,
                "status": "ok" if outcome.ok else "failed",
                "attempts": outcome.attempts,
                "error": outcome.error,
            }
            for outcome in report
        ),
        title=f"Downloads from {name}/{blob}",
    )
    click.echo(report.message)


@cli.command("list")
@click.option("-n", "--name", default=None, help="The name of the container")
@click.option("-p", "--prefix", default=None, help="The prefix/folder of the blob")
@click.option("--verbose", is_flag=True, default=False, help="Show extended fields")
@pass_state
def list_entities(state: CliState, name: Optional[str], prefix: Optional[str], verbose: bool):
    """Lists containers, folders of a container, or files of a folder."""
    client = state.client
    verbose = verbose or state.debug
    try:
        entries = client.list(name, prefix, verbose=verbose)
    except StorageError as exc:
        raise click.ClickException(str(exc)) from exc

    if not name:
        title = "Containers"
    elif not prefix:
        title = f"Folders in {name}"
    else:
        title = f"Files in {name}/{prefix}"
    _print_table((entry.to_dict(verbose) for entry in entries), title=title)


def main():
    cli()


if __name__ == "__main__":
    main()
