"""Output formatting utilities for CLI.

Follows the golden rule:
- stdout = data (tables, series, dot graphs, JSON)
- stderr = human-readable logs (progress, errors, info)
"""

import json
from typing import Any, Iterable, Sequence

from rich.console import Console
from rich.table import Table

from cyan.query.flow import Arc
from cyan.query.series import MultiSeries

# stderr console for human logs (preserves colors when redirected)
console = Console(stderr=True)

# stdout console for tabular data
out = Console()


def output_json(data: Any, indent: int | None = 2) -> None:
    """Output JSON to stdout (machine-readable)."""
    print(json.dumps(data, indent=indent, default=str), flush=True)


def log_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def log_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def log_error(message: str) -> None:
    """Log error message to stderr (always shown)."""
    console.print(f"[red]✗[/red] {message}", style="bold red")


# ============================================================================
# Data Rendering
# ============================================================================


def print_records(records: Sequence[dict[str, Any]], title: str | None = None) -> None:
    """Render a list of homogeneous dicts as a table."""
    if not records:
        console.print("[dim]no rows[/dim]")
        return
    table = Table(title=title)
    for column in records[0]:
        table.add_column(str(column))
    for record in records:
        table.add_row(*("" if v is None else str(v) for v in record.values()))
    out.print(table)


def print_rows(columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    """Render query result rows under their column names."""
    table = Table()
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row))
    out.print(table)


def print_composition(composition: dict[int, float], title: str | None = None) -> None:
    """Nuclide masses, one row per nuclide."""
    table = Table(title=title)
    table.add_column("Nuclide", justify="right")
    table.add_column("Mass (kg)", justify="right")
    for nuc in sorted(composition):
        table.add_row(str(nuc), f"{composition[nuc]:.6g}")
    out.print(table)


def print_inventories(inventories: dict[int, dict[int, float]]) -> None:
    """Per-agent nuclide masses."""
    table = Table()
    table.add_column("Agent", justify="right")
    table.add_column("Nuclide", justify="right")
    table.add_column("Mass (kg)", justify="right")
    for agent in sorted(inventories):
        comp = inventories[agent]
        if not comp:
            table.add_row(str(agent), "-", "0")
        for nuc in sorted(comp):
            table.add_row(str(agent), str(nuc), f"{comp[nuc]:.6g}")
    out.print(table)


def print_series(header: str, labels: Sequence[str], series: MultiSeries) -> None:
    """Aligned series as whitespace separated columns."""
    print(f"# {header}")
    print("# [Timestep] " + " ".join(f"[{label}]" for label in labels))
    for row in series.rows():
        print(" ".join([str(row.x), *(f"{y:g}" for y in row.ys)]))


def format_dot(arcs: Sequence[Arc]) -> str:
    """Graphviz dot graph of resource arcs between nodes."""
    lines = [
        "digraph ResourceFlows {",
        "    overlap = false;",
        "    nodesep=1.0;",
        "    edge [fontsize=9];",
    ]
    for arc in arcs:
        lines.append(
            f'    "{arc.src}" -> "{arc.dst}" [label="{arc.commodity}\\n({arc.quantity:.3g} kg)"];'
        )
    lines.append("}")
    return "\n".join(lines)
