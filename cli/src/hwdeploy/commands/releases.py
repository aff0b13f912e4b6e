"""Release commands: render charts and manage releases on the cluster."""

from functools import wraps
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from backend.app.dependencies import build_release_manager
from backend.app.errors import DeployError
from backend.app.logging_config import configure_cli_logging
from backend.app.repositories.chart_repository import ChartRepository, load_values_file
from backend.app.repositories.release_repository import ReleaseRecord
from backend.app.services.release_manager import ReleaseManager
from backend.app.telemetry import build_telemetry_client
from ..config import Config

console = Console()
err_console = Console(stderr=True)


def _manager(namespace: Optional[str]) -> ReleaseManager:
    config = Config.load()
    settings = config.settings(namespace=namespace)
    configure_cli_logging(settings)
    telemetry = build_telemetry_client(enabled=settings.telemetry_enabled, sink=settings.telemetry_sink)
    return build_release_manager(settings, telemetry=telemetry)


def _chart(chart_ref: Optional[str]):
    """Explicit argument, then `chart` from the config file, then HELLOWORLD_CHART_DIR."""
    config = Config.load()
    return ChartRepository().load(chart_ref or config.chart or config.settings().chart_dir)


def _value_files(paths: Tuple[str, ...]):
    return [load_values_file(Path(path)) for path in paths]


def _fail_on_deploy_error(func):
    """Print deploy failures in red and exit 1 instead of dumping a traceback."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DeployError as exc:
            err_console.print(f"[red]Error:[/red] {exc}")
            raise SystemExit(1) from exc

    return wrapper


def _print_record(record: ReleaseRecord):
    console.print(f"NAME: [cyan]{record.name}[/cyan]")
    console.print(f"NAMESPACE: {record.namespace}")
    console.print(f"STATUS: [green]{record.status}[/green]")
    console.print(f"REVISION: {record.revision}")
    console.print(f"CHART: {record.chart_name}-{record.chart_version}")
    console.print(f"LAST DEPLOYED: {record.updated_at}")
    console.print(f"DESCRIPTION: {record.description}")


namespace_option = click.option("-n", "--namespace", default=None, help="Target namespace.")
set_option = click.option(
    "--set",
    "set_values",
    multiple=True,
    help="Override a value, e.g. --set replicaCount=3 (repeatable, comma-separated).",
)
values_option = click.option(
    "-f",
    "--values",
    "values_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file with value overrides (repeatable, later files win).",
)


@click.command()
@click.argument("name")
@click.argument("chart", required=False)
@namespace_option
@set_option
@values_option
@_fail_on_deploy_error
def template(name, chart, namespace, set_values, values_files):
    """Render a chart's descriptors to stdout without touching the cluster."""
    manager = _manager(namespace)
    result = manager.template(
        _chart(chart),
        name=name,
        value_files=_value_files(values_files),
        set_values=set_values,
    )
    click.echo(result.manifest, nl=False)


@click.command()
@click.argument("name")
@click.argument("chart", required=False)
@namespace_option
@set_option
@values_option
@_fail_on_deploy_error
def install(name, chart, namespace, set_values, values_files):
    """Install a chart as a new release (revision 1)."""
    manager = _manager(namespace)
    record = manager.install(
        name,
        _chart(chart),
        value_files=_value_files(values_files),
        set_values=set_values,
    )
    _print_record(record)


@click.command()
@click.argument("name")
@click.argument("chart", required=False)
@namespace_option
@set_option
@values_option
@click.option("--reuse-values", is_flag=True, help="Start from the deployed values instead of chart defaults.")
@click.option("-i", "--install", "install_missing", is_flag=True, help="Install if the release does not exist.")
@_fail_on_deploy_error
def upgrade(name, chart, namespace, set_values, values_files, reuse_values, install_missing):
    """Upgrade a release, recording a new revision."""
    manager = _manager(namespace)
    record = manager.upgrade(
        name,
        _chart(chart),
        value_files=_value_files(values_files),
        set_values=set_values,
        reuse_values=reuse_values,
        install=install_missing,
    )
    console.print(f"Release [cyan]{name}[/cyan] has been upgraded.")
    _print_record(record)


@click.command()
@click.argument("name")
@click.argument("revision", type=int, required=False)
@namespace_option
@_fail_on_deploy_error
def rollback(name, revision, namespace):
    """Roll back to a previous revision (default: the one before current)."""
    manager = _manager(namespace)
    record = manager.rollback(name, revision)
    console.print(f"Rollback was a success! Now at revision {record.revision}.")


@click.command()
@click.argument("name")
@namespace_option
@click.option("--keep-history", is_flag=True, help="Keep revision history after removing resources.")
@_fail_on_deploy_error
def uninstall(name, namespace, keep_history):
    """Remove every resource belonging to a release."""
    manager = _manager(namespace)
    manager.uninstall(name, keep_history=keep_history)
    console.print(f"release \"{name}\" uninstalled")


@click.command()
@click.argument("name")
@namespace_option
@_fail_on_deploy_error
def history(name, namespace):
    """Show every revision of a release."""
    manager = _manager(namespace)

    table = Table(title=f"Release {name}")
    table.add_column("REVISION", justify="right")
    table.add_column("UPDATED")
    table.add_column("STATUS")
    table.add_column("CHART")
    table.add_column("APP VERSION")
    table.add_column("DESCRIPTION")
    for record in manager.history(name):
        table.add_row(
            str(record.revision),
            record.updated_at,
            record.status,
            f"{record.chart_name}-{record.chart_version}",
            record.app_version or "",
            record.description,
        )
    console.print(table)


@click.command()
@click.argument("name")
@namespace_option
@_fail_on_deploy_error
def status(name, namespace):
    """Show the latest revision of a release."""
    manager = _manager(namespace)
    _print_record(manager.status(name))
