from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _liters(value: Any) -> str:
    if value is None:
        return "-"
    return f"{float(value):.2f} L"


def render_level(payload: Dict[str, Any]) -> None:
    echo_heading("Bin Level")
    echo_key_values(
        [
            ("bin", payload.get("bin")),
            ("level", f"{payload.get('level')}%"),
            ("observed_at", payload.get("observed_at")),
        ]
    )


def render_emptying(payload: Dict[str, Any]) -> None:
    echo_heading("Emptying Session")
    echo_key_values(
        [
            ("bin", payload.get("bin")),
            ("state", payload.get("state")),
            ("outcome", payload.get("outcome") or "pending"),
            ("level_before", payload.get("level_before")),
            ("level_after", payload.get("level_after")),
            ("volume", _liters(payload.get("volume"))),
        ]
    )
    if payload.get("outcome") == "timed_out":
        typer.secho("No level change detected; try again.", fg=typer.colors.YELLOW)
    elif payload.get("reason"):
        typer.echo(f"reason: {payload['reason']}")


def render_bin_volumes(payload: Dict[str, Any]) -> None:
    echo_heading(f"Volume by Bin ({payload.get('window')})")
    bins = payload.get("bins") or []
    if not bins:
        typer.echo("No emptying events in this window.")
    for entry in bins:
        typer.echo(f"  - {entry.get('bin')}: {_liters(entry.get('volume'))}")
    typer.echo(f"total: {_liters(payload.get('total'))}")


def render_leaderboard(payload: Dict[str, Any]) -> None:
    echo_heading(f"Leaderboard ({payload.get('window')})")
    entries = payload.get("entries") or []
    if not entries:
        typer.echo("No collectors found.")
    for rank, entry in enumerate(entries, start=1):
        typer.echo(f"  {rank}. {entry.get('name')}: {_liters(entry.get('volume'))}")


def render_user_stats(payload: Dict[str, Any]) -> None:
    echo_heading(f"Collector {payload.get('user_id')}")
    echo_key_values(
        [
            ("all_time", _liters(payload.get("all_time"))),
            ("last_30_days", _liters(payload.get("last_30_days"))),
            ("last_7_days", _liters(payload.get("last_7_days"))),
            ("last_24_hours", _liters(payload.get("last_24_hours"))),
        ]
    )
    monthly = payload.get("monthly") or []
    if monthly:
        typer.echo("monthly:")
        for bucket in monthly:
            marker = " *" if bucket.get("is_current_month") else ""
            typer.echo(f"  - {bucket.get('month')}: {_liters(bucket.get('volume'))}{marker}")
