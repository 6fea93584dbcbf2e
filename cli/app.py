from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_bin_volumes,
    render_emptying,
    render_leaderboard,
    render_level,
    render_user_stats,
)

WINDOWS = ("today", "week", "month", "year", "all-time")


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the smart bin telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _check_window(window: str) -> str:
    if window not in WINDOWS:
        raise typer.BadParameter(f"window must be one of: {', '.join(WINDOWS)}")
    return window


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between status checks when waiting for confirmation.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait for an emptying confirmation.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("push")
def push_command(
    ctx: typer.Context,
    bin_id: str = typer.Argument(..., help="Bin identifier."),
    distance: Optional[float] = typer.Option(None, "--distance", "-d", help="Distance in cm."),
    level: Optional[float] = typer.Option(None, "--level", "-l", help="Device-reported level."),
) -> None:
    """Send a sensor reading for a bin."""
    state = _get_state(ctx)
    payload = state.client.push_telemetry(bin_id, distance_cm=distance, trash_level=level)
    render_level(payload)


@app.command("level")
def level_command(
    ctx: typer.Context,
    bin_id: str = typer.Argument(..., help="Bin identifier."),
) -> None:
    """Show the current fill level of a bin."""
    state = _get_state(ctx)
    render_level(state.client.get_level(bin_id))


@app.command("empty")
def empty_command(
    ctx: typer.Context,
    bin_id: str = typer.Argument(..., help="Bin identifier."),
    user_id: Optional[str] = typer.Option(
        None, "--user", "-u", help="Collector performing the emptying (defaults to BINS_USER_ID)."
    ),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait for the level change and display the recorded volume.",
    ),
) -> None:
    """Start an emptying session for a bin."""
    state = _get_state(ctx)
    collector = user_id or state.config.user_id
    if not collector:
        raise typer.BadParameter("Provide --user or set BINS_USER_ID.")
    payload = state.client.start_emptying(bin_id, collector)
    typer.secho(
        f"Emptying started for {bin_id} at {payload.get('level_before')}%.",
        fg=typer.colors.GREEN,
    )

    if not wait:
        return

    interval = state.config.poll_interval
    poll_timeout = state.config.poll_timeout
    typer.echo(f"Waiting for confirmation (interval={interval}s, timeout={poll_timeout}s)...")
    result = state.client.poll_emptying(bin_id, interval=interval, timeout=poll_timeout)
    typer.echo()
    render_emptying(result)


@app.command("bin-volumes")
def bin_volumes_command(
    ctx: typer.Context,
    window: str = typer.Option("all-time", "--window", "-w", help="today, week, month, year or all-time."),
) -> None:
    """Emptied volume per bin."""
    state = _get_state(ctx)
    render_bin_volumes(state.client.volume_by_bin(_check_window(window)))


@app.command("leaderboard")
def leaderboard_command(
    ctx: typer.Context,
    window: str = typer.Option("all-time", "--window", "-w", help="today, week, month, year or all-time."),
) -> None:
    """Collectors ranked by emptied volume."""
    state = _get_state(ctx)
    render_leaderboard(state.client.leaderboard(_check_window(window)))


@app.command("user-stats")
def user_stats_command(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Collector identifier."),
) -> None:
    """Rolling totals and monthly histogram for a collector."""
    state = _get_state(ctx)
    render_user_stats(state.client.user_stats(user_id))
