"""``dokuforge audit`` — verify and display the audit ledger."""

from __future__ import annotations

import typer
from rich.table import Table

from dokuforge.cli.render import build_config, console, forge_errors
from dokuforge.core.audit_ledger import AuditLedger
from dokuforge.core.layout import ForgeLayout


def audit_cmd(
    ctx: typer.Context,
    agent: str = typer.Option(None, "--agent", "-a", help="Only show entries for this agent."),
) -> None:
    """Verify the hash chain, then list the recorded entries."""
    config = build_config(ctx)
    ledger = AuditLedger(ForgeLayout(config.root).audit_ledger_path)

    with forge_errors():
        ledger.verify_chain()
        entries = ledger.entries()

    if agent:
        entries = [e for e in entries if e.agent_ref.partition("@")[0] == agent]

    table = Table(title=f"Audit ledger ({len(entries)} entries, chain verified)")
    table.add_column("Time", style="dim")
    table.add_column("Stage", style="cyan")
    table.add_column("Agent")
    table.add_column("Signed by", style="green")
    table.add_column("sha256")
    for entry in entries:
        table.add_row(
            entry.timestamp_utc.isoformat(timespec="seconds"),
            entry.stage,
            entry.agent_ref,
            entry.signed_by,
            entry.sha256[:16],
        )
    console.print(table)
