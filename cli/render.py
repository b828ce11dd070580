from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]], indent: str = "") -> None:
    for key, value in pairs:
        typer.echo(f"{indent}{key}: {_inline(value)}")


def _inline(value: Any) -> str:
    if isinstance(value, dict):
        return ", ".join(f"{key}={_inline(item)}" for key, item in value.items())
    if isinstance(value, list):
        return f"[{len(value)} entries]"
    return str(value)


def render_section(name: str, value: Any) -> None:
    typer.echo()
    echo_heading(name)
    if isinstance(value, dict):
        if value:
            echo_key_values(value.items(), indent="  ")
        else:
            typer.echo("  (empty)")
    elif isinstance(value, list):
        if not value:
            typer.echo("  (none)")
        for entry in value:
            typer.echo(f"  - {_inline(entry)}")
    else:
        typer.echo(f"  {value}")


def render_report(name: str, data: Dict[str, Any]) -> None:
    echo_heading(f"Report: {name}")
    typer.echo()
    echo_heading("Summary")
    echo_key_values((data.get("summary") or {}).items(), indent="  ")
    for section, value in data.items():
        if section == "summary":
            continue
        render_section(section, value)


def render_import(payload: Dict[str, Any]) -> None:
    typer.secho(
        f"Imported {payload.get('imported', 0)} records into {payload.get('entitySet')}.",
        fg=typer.colors.GREEN,
    )
