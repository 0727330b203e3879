# display.py
# All operator-facing console output for the debug session.
#
# This module owns presentation entirely. harness.py never formats strings;
# it calls named functions here. Output goes to stderr; stdout belongs to the
# stdio transport.
#
# Colour language:
#   blue: ordinary workflow steps
#   yellow: revisions
#   green: branches / success
#   cyan: phase routing
#   red: failures

from rich import box
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ot_debug.config import err_console as console
from ot_debug.models import Step


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _step_header(step: Step) -> tuple[str, str]:
    position = f"{step.thought_number}/{step.total_thoughts}"
    if step.is_revision:
        return f"🔄 OT Debug Revision {position} (revising step {step.revises_thought})", "yellow"
    if step.branch_from_thought:
        return (
            f"🌿 OT Debug Branch {position} (from step {step.branch_from_thought}, ID: {step.branch_id})",
            "green",
        )
    return f"🔧 OT Debug Step {position}", "blue"


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def banner(server_name: str) -> None:
    console.print(
        Panel.fit(
            f"[bold cyan]{server_name}[/bold cyan]\n"
            "[dim]Legacy OT device debugging behind a reverse proxy, running on stdio[/dim]",
            border_style="cyan",
            padding=(0, 2),
        )
    )


def step_logged(step: Step) -> None:
    header, color = _step_header(step)
    console.print(
        Panel(
            Text(step.thought),
            title=Text(header, style=f"bold {color}"),
            title_align="left",
            border_style=color,
            padding=(0, 1),
        )
    )


def phase_started(number: int | None, title: str) -> None:
    tag = f"PHASE {number}" if number is not None else "SESSION"
    console.print(_label(tag, "cyan"), f"[cyan] {title}[/cyan]")


def submission_failed(message: str) -> None:
    console.print(
        Panel(
            f"[bold white]{message}[/bold white]",
            title=_label("STEP FAILED", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def report_summary(summary: dict) -> None:
    table = Table(box=box.SIMPLE_HEAVY, show_header=False, border_style="green", padding=(0, 1))
    table.add_column("Field", style="dim")
    table.add_column("Value", style="white")
    for key, value in summary.items():
        table.add_row(key, str(value))

    console.print(
        Panel(
            table,
            title=_label("FINAL REPORT", "green"),
            border_style="green",
            padding=(0, 1),
        )
    )
