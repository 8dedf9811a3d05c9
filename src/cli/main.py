"""Sona CLI: API server and in-process action management.

Usage:
    sona serve                          Start the automation API
    sona config show                    Show resolved configuration
    sona actions list -u USER -t THREAD List a thread's ledger records
    sona actions decide -u USER -t THREAD --action-id ID [--decline]
    sona actions run batch.json -u USER -t THREAD
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import httpx
import typer
from rich.console import Console

from src.cli.config import get_config, load_config
from src.cli.output import format_actions_table, format_decision, format_results_table
from src.errors import DomainError

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="sona",
    help="Customer-support order automation: dispatch and approval",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
actions_app = typer.Typer(help="Inspect, decide and run thread actions")

app.add_typer(config_app, name="config")
app.add_typer(actions_app, name="actions")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to sona.yaml config file"
    ),
):
    """Sona CLI: customer-support order automation."""
    global _config_path
    _config_path = config


@app.command()
def version():
    """Show Sona version."""
    from importlib.metadata import version as pkg_version
    try:
        v = pkg_version("sona-automation")
    except Exception:
        v = "unknown"
    console.print(f"[bold]Sona[/bold] v{v}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Start the automation API (FastAPI under uvicorn)."""
    import uvicorn

    cfg = get_config(_config_path)
    final_host = host or cfg.daemon.host
    final_port = port or cfg.daemon.port

    # The API lifespan loads config through the same path
    if _config_path:
        os.environ["SONA_CONFIG_PATH"] = str(_config_path)

    console.print(f"[bold]Starting Sona API on {final_host}:{final_port}[/bold]")
    uvicorn.run(
        "src.api.main:app",
        host=final_host,
        port=final_port,
        log_level=cfg.daemon.log_level,
        workers=1,
    )


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration."""
    try:
        cfg = load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    if cfg is None:
        console.print("[yellow]No config file found; showing defaults.[/yellow]")
        console.print("Searched: ./sona.yaml, ~/.sona/config.yaml")
        cfg = get_config()

    console.print("[bold]Daemon:[/bold]")
    console.print(f"  host: {cfg.daemon.host}")
    console.print(f"  port: {cfg.daemon.port}")
    console.print(f"  log_level: {cfg.daemon.log_level}")

    console.print("\n[bold]Shopify:[/bold]")
    console.print(f"  api_version: {cfg.shopify.api_version}")
    console.print(f"  request_timeout_seconds: {cfg.shopify.request_timeout_seconds}")

    console.print("\n[bold]Automation defaults:[/bold]")
    for name, enabled in cfg.automation_defaults.model_dump().items():
        console.print(f"  {name}: {'[green]on[/green]' if enabled else '[red]off[/red]'}")

    from src.services.credential_encryption import get_key_source_info

    key_info = get_key_source_info()
    console.print("\n[bold]Encryption key:[/bold]")
    if key_info["source"] == "env":
        console.print("  source: SONA_ENCRYPTION_KEY")
    elif key_info["source"] == "env_file":
        console.print(f"  source: SONA_ENCRYPTION_KEY_FILE ({key_info['path']})")
    else:
        console.print("  source: [red]not configured[/red]")


# --- Action commands ---


def _emit(output: str, as_json: bool) -> None:
    # JSON must not go through Rich markup parsing
    if as_json:
        typer.echo(output)
    else:
        console.print(output)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


@actions_app.command("list")
def actions_list(
    user: str = typer.Option(..., "--user", "-u", help="Merchant user id"),
    thread: str = typer.Option(..., "--thread", "-t", help="Thread id"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List ledger records for a thread, newest first."""
    from src.db.connection import get_db_context, init_db
    from src.services import ActionLedgerService

    init_db()
    with get_db_context() as db:
        ledger = ActionLedgerService(db)
        rows = [ledger.to_dict(r) for r in ledger.list_for_thread(user, thread)]
    _emit(format_actions_table(rows, as_json=as_json), as_json)


async def _decide(user: str, thread: str, request: Any) -> dict[str, Any]:
    from src.db.connection import get_db_context
    from src.services.decision_service import DecisionService

    cfg = get_config(_config_path)
    async with httpx.AsyncClient() as http_client:
        with get_db_context() as db:
            service = DecisionService(
                db,
                http_client,
                api_version=cfg.shopify.api_version,
                timeout=cfg.shopify.request_timeout_seconds,
            )
            return await service.decide(user, thread, request)


@actions_app.command("decide")
def actions_decide(
    user: str = typer.Option(..., "--user", "-u", help="Merchant user id"),
    thread: str = typer.Option(..., "--thread", "-t", help="Thread id"),
    action_id: Optional[str] = typer.Option(None, "--action-id", help="Ledger record id"),
    proposal_text: Optional[str] = typer.Option(
        None, "--proposal-text", help="Free-text proposal to accept"
    ),
    decline: bool = typer.Option(False, "--decline", help="Decline instead of accept"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Accept or decline a pending action in-process.

    Without --action-id the thread's most recent pending action is used.
    """
    from src.db.connection import init_db
    from src.services.decision_service import DecisionRequest

    if not action_id and not proposal_text:
        # Pin the latest pending record so the request names an action
        pending = _latest_pending_id(user, thread)
        if pending is None:
            _fail("No pending action on this thread; pass --action-id or --proposal-text.")
        action_id = pending

    init_db()
    request = DecisionRequest(
        decision="declined" if decline else "accepted",
        action_id=action_id,
        proposal_text=proposal_text,
    )
    try:
        outcome = asyncio.run(_decide(user, thread, request))
    except DomainError as e:
        _fail(str(e))
    _emit(format_decision(outcome, as_json=as_json), as_json)


def _latest_pending_id(user: str, thread: str) -> str | None:
    from src.db.connection import get_db_context, init_db
    from src.services import ActionLedgerService

    init_db()
    with get_db_context() as db:
        record = ActionLedgerService(db).latest_pending(user, thread)
        return record.id if record else None


async def _run_batch(
    user: str, thread: str | None, batch: dict[str, Any]
) -> list:
    from src.db.connection import get_db_context
    from src.models.actions import AutomationPolicy
    from src.services.automation_executor import ExecutionContext, execute_automation_actions

    cfg = get_config(_config_path)
    async with httpx.AsyncClient() as http_client:
        with get_db_context() as db:
            ctx = ExecutionContext(
                db=db,
                user_id=user,
                http_client=http_client,
                thread_id=thread,
                workspace_id=batch.get("workspaceId"),
                api_version=batch.get("apiVersion") or cfg.shopify.api_version,
                timeout=cfg.shopify.request_timeout_seconds,
                default_policy=AutomationPolicy(**cfg.automation_defaults.model_dump()),
            )
            return await execute_automation_actions(
                ctx,
                batch.get("actions") or [],
                policy=batch.get("automation"),
                order_id_map=batch.get("orderIdMap"),
            )


@actions_app.command("run")
def actions_run(
    batch_file: Path = typer.Argument(..., help="JSON file with {actions, automation?, orderIdMap?}"),
    user: str = typer.Option(..., "--user", "-u", help="Merchant user id"),
    thread: Optional[str] = typer.Option(None, "--thread", "-t", help="Thread id"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Execute a batch of proposed actions in-process."""
    from src.db.connection import init_db

    if not batch_file.exists():
        _fail(f"Batch file not found: {batch_file}")
    try:
        batch = json.loads(batch_file.read_text())
    except json.JSONDecodeError as e:
        _fail(f"Batch file is not valid JSON: {e}")
    if isinstance(batch, list):
        batch = {"actions": batch}
    if not isinstance(batch, dict):
        _fail("Batch file must contain an object or a list of actions.")

    init_db()
    results = asyncio.run(_run_batch(user, thread, batch))
    _emit(format_results_table(results, as_json=as_json), as_json)
    if any(r.status == "error" for r in results):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
