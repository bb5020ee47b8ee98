"""CLI entry point: headless host session + `twinpane ext` management commands."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from .bridge import ContextBridge, PaneState
from .core.config import Config, load_config
from .core.utils import configure_logging, short_path
from .extensions import ExtensionFault, ExtensionRuntime, ExtensionStatus
from .extensions.preferences import SCOPES, set_enabled_preference
from .tui import print_capabilities, print_faults, print_status, wire_prompts

console = Console()


# ── Host session ────────────────────────────────────────────────────


async def _run_session(
    config: Config,
    left: str,
    right: str,
    run: str | None = None,
    interactive: bool = False,
) -> int:
    bridge = ContextBridge(
        PaneState(path=left), PaneState(path=right), data_root=config.resolved_data_dir
    )
    wire_prompts(bridge, interactive=interactive)
    code = 0
    async with ExtensionRuntime.from_config(config, bridge) as runtime:
        await runtime.discover()
        if run:
            ext_id, _, command_id = run.partition(":")
            if not ext_id or not command_id:
                console.print("--run expects EXT:COMMAND", style="bold")
                code = 2
            else:
                res = await runtime.execute_command(ext_id, command_id)
                if res.ok:
                    if res.value is not None:
                        console.print(escape(str(res.value)))
                else:
                    console.print(f"error: {escape(str(res.error))}", style="bold")
                    code = 1
        print_status(runtime.list_records(), console)
        if runtime.faults:
            console.print()
            print_faults(runtime.faults, console)
    return code


async def _inspect(
    config: Config,
) -> tuple[list[ExtensionStatus], dict[str, list[str]], list[ExtensionFault]]:
    """Load everything once, snapshot the management view, shut down again."""
    bridge = ContextBridge(data_root=config.resolved_data_dir)
    async with ExtensionRuntime.from_config(config, bridge) as runtime:
        await runtime.discover()
        return runtime.list_records(), runtime.registry.summary(), list(runtime.faults)


# ── Extension management subcommands ────────────────────────────────


def _parse_scope(args: list[str]) -> str:
    """Extract --scope value from args, default 'user'."""
    for i, a in enumerate(args):
        if a in ("--scope", "-s") and i + 1 < len(args):
            return args[i + 1]
    return "user"


def _handle_ext_cli(args: list[str] | None = None) -> None:
    """Handle `twinpane ext list/enable/disable/caps/faults`."""
    args = sys.argv[2:] if args is None else args
    if not args:
        _ext_usage()
        return

    sub = args[0]
    rest = args[1:]
    config = load_config()
    configure_logging(config.log_level)

    if sub == "list":
        rows, _, _ = asyncio.run(_inspect(config))
        console.print(f"[dim]{short_path(config.resolved_extensions_dir)}[/dim]")
        print_status(rows, console)

    elif sub in ("enable", "disable"):
        if not rest or rest[0].startswith("-"):
            console.print(
                f"usage: twinpane ext {sub} <id> [--scope {'|'.join(SCOPES)}]", style="dim"
            )
            return
        scope = _parse_scope(rest)
        if scope not in SCOPES:
            console.print(f"unknown scope: {scope}", style="bold")
            return
        path = set_enabled_preference(config, rest[0], sub == "enable", scope)
        console.print(f"{sub}d [bold]{escape(rest[0])}[/bold]  [dim]{short_path(path)}[/dim]")

    elif sub in ("caps", "capabilities"):
        _, summary, _ = asyncio.run(_inspect(config))
        print_capabilities(summary, console)

    elif sub == "faults":
        rows, _, faults = asyncio.run(_inspect(config))
        print_faults(faults, console)
        for row in rows:
            if row.fault:
                console.print(
                    f"  [red]{row.state.value}[/red]  [bold]{escape(row.id)}[/bold]  "
                    f"{escape(row.fault)}"
                )

    else:
        _ext_usage()


def _ext_usage() -> None:
    console.print("usage: twinpane ext <command>", style="dim")
    console.print()
    console.print("  [bold]list[/bold]      List extensions with state and fault")
    console.print("  [bold]enable[/bold]    Enable an extension (persisted)")
    console.print("  [bold]disable[/bold]   Disable an extension (persisted)")
    console.print("  [bold]caps[/bold]      Show which extensions provide each capability")
    console.print("  [bold]faults[/bold]    Show discovery, load and lifecycle faults")
    console.print()
    console.print("examples:", style="dim")
    console.print("  twinpane ext disable sample.columns --scope project", style="dim")


# ── CLI entry point ─────────────────────────────────────────────────


@click.command()
@click.option(
    "--extensions-dir",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Extensions root directory",
)
@click.option("--left", default=None, help="Initial path of the left pane")
@click.option("--right", default=None, help="Initial path of the right pane")
@click.option("--run", "run_command", default=None, metavar="EXT:COMMAND", help="Run one command")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def _click_main(
    extensions_dir: Path | None,
    left: str | None,
    right: str | None,
    run_command: str | None,
    verbose: bool,
):
    """twinpane: load extensions into a headless dual-pane session."""
    config = load_config(extensions_dir=extensions_dir, verbose=verbose)
    configure_logging(config.log_level)
    cwd = str(config.cwd)
    code = asyncio.run(
        _run_session(
            config,
            left or cwd,
            right or cwd,
            run=run_command,
            interactive=sys.stdin.isatty(),
        )
    )
    if code:
        sys.exit(code)


def main():
    """True entry point: intercepts subcommands before click."""
    if len(sys.argv) > 1 and sys.argv[1] == "ext":
        _handle_ext_cli()
        return
    _click_main()


if __name__ == "__main__":
    main()
