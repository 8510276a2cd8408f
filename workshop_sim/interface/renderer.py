"""
Display helpers for the workshop CLI.

Handles theming and the status / scenario / outcome tables.
"""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..scenario.catalog import ScenarioCatalog
from ..state.schema import OutcomeSummary


# Shared console instance
console = Console()

THEME = {
    "primary": "steel_blue",
    "secondary": "grey70",
    "warning": "dark_goldenrod",
    "danger": "dark_red",
    "accent": "cyan",
    "dim": "dim",
    "ok": "green3",
}


def _kv_table(title: str) -> Table:
    table = Table(
        title=f"[bold {THEME['primary']}]{title}[/bold {THEME['primary']}]",
        show_header=False,
        box=None,
    )
    table.add_column("Key", style=THEME["dim"])
    table.add_column("Value", style=THEME["secondary"])
    return table


def show_scenario(catalog: ScenarioCatalog):
    """Summarize a loaded scenario: phases with their decisions and events."""
    table = Table(title=f"[bold {THEME['primary']}]{catalog.title}[/bold {THEME['primary']}] v{catalog.version}")
    table.add_column("Phase", style=THEME["accent"])
    table.add_column("Decisions", justify="right")
    table.add_column("Entry events", justify="right")
    table.add_column("Curveballs", justify="right")
    table.add_column("Time (s)", justify="right", style=THEME["dim"])

    for phase, config in catalog.data.phases.items():
        table.add_row(
            phase,
            str(len(catalog.get_phase_decisions(phase))),
            str(len(config.entry_events)),
            str(len(catalog.get_curveball_events(phase))),
            str(config.time_allocation),
        )

    console.print(table)
    console.print(
        f"[{THEME['dim']}]{len(catalog.get_stakeholders())} stakeholders, "
        f"{len(catalog.get_events())} events[/{THEME['dim']}]"
    )


def show_status(status: dict):
    """Show the session summary produced by WorkshopSimulation.status()."""
    table = _kv_table(status.get("scenario", "Workshop"))

    complete = status.get("phase_complete")
    marker = f"[{THEME['ok']}]complete[/{THEME['ok']}]" if complete else f"[{THEME['warning']}]in progress[/{THEME['warning']}]"
    table.add_row("Phase", f"{status.get('phase')} ({marker}, {status.get('phase_progress', 0):.0%})")

    for name, value in status.get("resources", {}).items():
        table.add_row(name, f"{value:,.0f}" if isinstance(value, (int, float)) else str(value))

    debt = status.get("hidden_debt", 0)
    table.add_row("Hidden debt", f"[{THEME['danger']}]{debt:,.0f}[/{THEME['danger']}]" if debt else "0")
    table.add_row("Decisions", str(len(status.get("decisions", {}))))
    table.add_row("Active event", status.get("active_event") or "-")
    table.add_row("Queued events", ", ".join(status.get("queued_events", [])) or "-")

    console.print(table)


def show_outcomes(outcomes: OutcomeSummary):
    body = (
        f"Project success: [bold]{outcomes.project_success}[/bold]\n"
        f"Sustainability: [bold]{outcomes.sustainability}[/bold]\n"
        f"Stakeholder satisfaction: {outcomes.stakeholder_satisfaction}\n"
        f"Hidden debt revealed: [{THEME['danger']}]{outcomes.hidden_debt_revealed:,.0f}[/{THEME['danger']}]\n"
        f"Decisions made: {outcomes.decisions}"
    )
    console.print(Panel(body, title="Outcomes", border_style=THEME["primary"]))


def show_error(message: str):
    console.print(f"[{THEME['danger']}]{message}[/{THEME['danger']}]")
