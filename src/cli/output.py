"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.models.actions import ExecutionResult

console = Console()

# Ledger and result status colors
STATUS_COLORS = {
    "pending": "yellow",
    "pending_approval": "yellow",
    "applied": "green",
    "success": "green",
    "declined": "dim",
    "failed": "red",
    "error": "red",
}


def _colored(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def format_actions_table(actions: list[dict[str, Any]], as_json: bool = False) -> str:
    """Format ledger records as a Rich table or JSON.

    Args:
        actions: Records in the persisted row shape.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(actions, indent=2, ensure_ascii=False)

    if not actions:
        return "No actions found."

    table = Table(title="Thread actions", show_lines=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Type", style="white")
    table.add_column("Status")
    table.add_column("Order", justify="right")
    table.add_column("Detail")
    table.add_column("Updated")

    for action in actions:
        table.add_row(
            action["id"][:12],
            action["action_type"],
            _colored(action["status"]),
            action.get("order_number") or action.get("order_id") or "—",
            action.get("error") or action.get("detail") or "—",
            (action.get("updated_at") or "")[:19] or "—",
        )

    with console.capture() as capture:
        console.print(table)
    return capture.get()


def format_results_table(results: list[ExecutionResult], as_json: bool = False) -> str:
    """Format batch execution results as a Rich table or JSON."""
    if as_json:
        return json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False)

    if not results:
        return "No actions executed."

    table = Table(title="Execution results", show_lines=True)
    table.add_column("Type", style="white")
    table.add_column("Status")
    table.add_column("Order", justify="right")
    table.add_column("Detail")

    for result in results:
        table.add_row(
            result.type,
            _colored(result.status),
            result.order_id or "—",
            result.error or result.detail or "—",
        )

    with console.capture() as capture:
        console.print(table)
    return capture.get()


def format_decision(outcome: dict[str, Any], as_json: bool = False) -> str:
    """Format a reviewer decision outcome as a Rich panel or JSON."""
    if as_json:
        return json.dumps(outcome, indent=2, ensure_ascii=False)

    lines = [f"[bold]Decision:[/bold] {outcome.get('decision', 'accepted')}"]
    if outcome.get("alreadyApplied"):
        lines.append("[yellow]Already applied; nothing was executed.[/yellow]")
    for label, key in (
        ("Action", "action"),
        ("Order ID", "orderId"),
        ("Order #", "orderNumber"),
        ("Detail", "detail"),
        ("Action ID", "actionId"),
    ):
        if outcome.get(key):
            lines.append(f"[bold]{label}:[/bold] {outcome[key]}")

    with console.capture() as capture:
        console.print(Panel("\n".join(lines), title="Decision", border_style="cyan"))
    return capture.get()
