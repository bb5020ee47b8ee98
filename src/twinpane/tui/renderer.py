"""Rich rendering of extension status rows, capability index and faults."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..extensions.models import ExtensionFault, ExtensionState, ExtensionStatus

console = Console()

_STATE_STYLE = {
    ExtensionState.ENABLED: "green",
    ExtensionState.DISABLED: "dim",
    ExtensionState.FAILED: "red",
    ExtensionState.INITIALIZING: "yellow",
    ExtensionState.LOADED: "cyan",
}


def _state_cell(status: ExtensionStatus) -> str:
    style = _STATE_STYLE.get(status.state, "")
    label = status.state.value
    return f"[{style}]{label}[/{style}]" if style else label


def status_table(rows: Iterable[ExtensionStatus]) -> Table:
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("id", style="bold")
    table.add_column("version")
    table.add_column("state")
    table.add_column("capabilities")
    table.add_column("fault", style="red")
    for row in rows:
        table.add_row(
            escape(row.id),
            row.version or "-",
            _state_cell(row),
            ", ".join(row.capabilities) or "-",
            escape(row.fault),
        )
    return table


def print_status(rows: list[ExtensionStatus], out: Console | None = None) -> None:
    out = out or console
    if not rows:
        out.print("no extensions loaded", style="dim")
        return
    out.print(status_table(rows))


def print_capabilities(summary: Mapping[str, list[str]], out: Console | None = None) -> None:
    out = out or console
    for contract, ids in summary.items():
        shown = ", ".join(escape(i) for i in ids) if ids else "[dim]none[/dim]"
        out.print(f"  [bold]{contract:<20}[/bold] {shown}")


def print_faults(faults: Iterable[ExtensionFault], out: Console | None = None) -> None:
    out = out or console
    faults = list(faults)
    if not faults:
        out.print("no faults", style="dim")
        return
    for f in faults:
        out.print(
            f"  [red]{f.kind.value}[/red]  [bold]{escape(f.source)}[/bold]  {escape(f.summary)}"
        )
