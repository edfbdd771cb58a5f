"""
CLI interface for bqvirtual.

Exercises the virtual-table adapter against a real BigQuery table, one host
operation per command:

    bqvirtual list
    bqvirtual get <id>
    bqvirtual create -s new_name="Opening Day" -s new_attendance=35000
    bqvirtual update <id> -s new_attendance=36000
    bqvirtual delete <id>

Configuration comes from $BQVIRTUAL_HOME/config.yaml (see `bqvirtual init`).
"""

import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List

import click
import yaml
from rich.table import Table

from bqvirtual import __version__
from bqvirtual.errors import BqVirtualError
from bqvirtual.records import HostRecord
from bqvirtual.utils import console, setup_logging


def _parse_assignments(values: Iterable[str]) -> Dict[str, Any]:
    attributes: Dict[str, Any] = {}
    for item in values:
        if "=" not in item:
            raise click.BadParameter(f"Expected attribute=value, got: {item}")
        name, value = item.split("=", 1)
        attributes[name.strip()] = value
    return attributes


def _build_adapter(ctx):
    """Build a VirtualTableAdapter from the loaded config, or exit."""
    from bqvirtual.adapters import VirtualTableAdapter

    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'bqvirtual init' to create a configuration file.", err=True)
        raise SystemExit(1)

    return VirtualTableAdapter.from_config(ctx.obj["config"], ctx.obj["registry"])


def _print_records(records: List[HostRecord]) -> None:
    if not records:
        click.echo("No records found.")
        return

    columns: List[str] = []
    for record in records:
        for name in record.attributes:
            if name not in columns:
                columns.append(name)

    table = Table(show_header=True, header_style="bold")
    for name in columns:
        table.add_column(name)
    for record in records:
        table.add_row(*[_display(record.get(name)) for name in columns])
    console.print(table)
    click.echo(f"\n({len(records)} records)")


def _display(value: Any) -> str:
    if value is None:
        return "NULL"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


@click.group()
@click.version_option(version=__version__, prog_name="bqvirtual")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Path to config.yaml (default: $BQVIRTUAL_HOME/config.yaml)")
@click.option("--log-level", default="WARNING", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--log-format", default="pretty", show_default=True,
              type=click.Choice(["pretty", "structured"]))
@click.pass_context
def main(ctx, config_path, log_level, log_format):
    """
    bqvirtual - BigQuery-backed virtual table adapter.
    """
    from bqvirtual.config import YamlConfigurationProvider
    from bqvirtual.mapping import FieldMappingRegistry, schedule_registry

    setup_logging(log_level=log_level, log_format=log_format)

    ctx.ensure_object(dict)
    try:
        provider = YamlConfigurationProvider(config_path)
        ctx.obj["config"] = provider.resolve()
        if provider.field_mappings:
            ctx.obj["registry"] = FieldMappingRegistry.from_config(provider.field_mappings)
        else:
            ctx.obj["registry"] = schedule_registry()
    except BqVirtualError as e:
        # init does not need a config; other commands report this later
        ctx.obj["config_error"] = str(e)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Write a template config.yaml."""
    from bqvirtual.config import (
        BASE_URL_KEY,
        DATASET_ID_KEY,
        DEFAULT_BASE_URL,
        DEFAULT_TOKEN_URL,
        PROJECT_ID_KEY,
        SERVICE_ACCOUNT_FILE_KEY,
        TABLE_ID_KEY,
        TOKEN_URL_KEY,
        get_bqvirtual_home,
    )

    home = get_bqvirtual_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        PROJECT_ID_KEY: "my-project",
        DATASET_ID_KEY: "my_dataset",
        TABLE_ID_KEY: "my_table",
        SERVICE_ACCOUNT_FILE_KEY: str(home / "service-account.json"),
        BASE_URL_KEY: DEFAULT_BASE_URL,
        TOKEN_URL_KEY: DEFAULT_TOKEN_URL,
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    click.echo(f"Initialized bqvirtual config at {cfg_path}")
    click.echo("Place the service-account JSON key at the bqServiceAccountFile path.")


@main.command("token")
@click.pass_context
def token(ctx):
    """Obtain an access token and show when it expires."""
    adapter = _build_adapter(ctx)
    manager = adapter.executor.token_manager
    with adapter.executor:
        try:
            manager.get_access_token()
        except BqVirtualError as e:
            click.echo(f"✗ Authentication failed: {e}", err=True)
            raise SystemExit(1)
    click.echo(f"✓ Token obtained, expires at {manager.cache.token.expires_at.isoformat()}")


@main.command("list")
@click.pass_context
def list_records(ctx):
    """Retrieve every record (RetrieveMultiple)."""
    adapter = _build_adapter(ctx)
    with adapter.executor:
        try:
            records = adapter.retrieve_multiple()
        except BqVirtualError as e:
            click.echo(f"✗ RetrieveMultiple failed: {e}", err=True)
            raise SystemExit(1)
    _print_records(records)


@main.command("get")
@click.argument("record_id")
@click.pass_context
def get(ctx, record_id: str):
    """Retrieve one record by id."""
    adapter = _build_adapter(ctx)
    with adapter.executor:
        try:
            record = adapter.retrieve(record_id)
        except BqVirtualError as e:
            click.echo(f"✗ Retrieve failed: {e}", err=True)
            raise SystemExit(1)
    if record is None:
        click.echo(f"No record with id {record_id}")
        raise SystemExit(1)
    _print_records([record])


@main.command("create")
@click.option("--set", "-s", "assignments", multiple=True, help="attribute=value (repeatable)")
@click.pass_context
def create(ctx, assignments):
    """Create a record from host attributes."""
    adapter = _build_adapter(ctx)
    with adapter.executor:
        try:
            record = adapter.create(_parse_assignments(assignments))
        except BqVirtualError as e:
            click.echo(f"✗ Create failed: {e}", err=True)
            raise SystemExit(1)
    click.echo(f"✓ Created {record.id}")


@main.command("update")
@click.argument("record_id")
@click.option("--set", "-s", "assignments", multiple=True, help="attribute=value (repeatable)")
@click.pass_context
def update(ctx, record_id: str, assignments):
    """Update attributes of one record."""
    adapter = _build_adapter(ctx)
    with adapter.executor:
        try:
            adapter.update(record_id, _parse_assignments(assignments))
        except BqVirtualError as e:
            click.echo(f"✗ Update failed: {e}", err=True)
            raise SystemExit(1)
    click.echo(f"✓ Updated {record_id}")


@main.command("delete")
@click.argument("record_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx, record_id: str, yes: bool):
    """Delete one record."""
    adapter = _build_adapter(ctx)
    if not yes:
        click.confirm(f"Delete {record_id} from {adapter.executor.table_reference}?", abort=True)
    with adapter.executor:
        try:
            adapter.delete(record_id)
        except BqVirtualError as e:
            click.echo(f"✗ Delete failed: {e}", err=True)
            raise SystemExit(1)
    click.echo(f"✓ Deleted {record_id}")


@main.command("query-text")
@click.argument("operation", type=click.Choice(["retrieve", "retrieve-multiple", "update", "delete"]))
@click.argument("record_id", required=False)
@click.option("--set", "-s", "assignments", multiple=True, help="attribute=value (update only)")
@click.pass_context
def query_text(ctx, operation: str, record_id, assignments):
    """Print the statement an operation would send, without sending it."""
    adapter = _build_adapter(ctx)
    with adapter.executor:
        try:
            if operation == "retrieve-multiple":
                sql = adapter.select_all_query()
            elif operation == "retrieve":
                sql = adapter.select_query(record_id)
            elif operation == "update":
                sql = adapter.update_query(record_id, _parse_assignments(assignments))
            else:
                sql = adapter.delete_query(record_id)
        except BqVirtualError as e:
            click.echo(f"✗ {e}", err=True)
            raise SystemExit(1)

    if sql is None:
        click.echo("No mapped attributes; nothing would be sent.")
        return
    click.echo(sql)


if __name__ == "__main__":
    sys.exit(main())
