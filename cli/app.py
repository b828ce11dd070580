from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_import, render_report


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for importing records into and reading reports from the waste metrics service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds (defaults to CLI_TIMEOUT env or 30).",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        help="Bearer token sent with every request (defaults to API_TOKEN env).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout, token=token)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("report")
def report_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Report name, for example waste-generation."),
    days: Optional[int] = typer.Option(None, "--days", help="Lookback window in days."),
    ulb_id: Optional[str] = typer.Option(None, "--ulb-id", help="Restrict to one ULB."),
    area: Optional[str] = typer.Option(None, "--area", help="Restrict to one area or ward."),
    type_: Optional[str] = typer.Option(None, "--type", help="Restrict to one facility type."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Entries in ranked lists."),
    record_id: Optional[str] = typer.Option(
        None, "--id", help="Record id for per-facility, per-ULB and per-worker reports."
    ),
) -> None:
    """Fetch a report and print its summary and sections."""
    state = _get_state(ctx)
    data = state.client.get_report(
        name,
        {"days": days, "ulbId": ulb_id, "area": area, "type": type_, "limit": limit},
        record_id=record_id,
    )
    render_report(name, data)


@app.command("import")
def import_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file holding an array of records."
    ),
    entity_set: str = typer.Option(..., "--entity-set", "-e", help="Target entity set."),
    timestamp_fields: List[str] = typer.Option(
        [],
        "--timestamp-field",
        "-t",
        help="Field to parse as an ISO-8601 timestamp; repeatable.",
    ),
) -> None:
    """Bulk import records from a JSON file."""
    state = _get_state(ctx)
    typer.echo(f"Importing {file} into {entity_set} at {state.config.base_url} ...")
    payload = state.client.import_records(file, entity_set, timestamp_fields)
    render_import(payload)
