"""``dokuforge verify PATH ...`` — re-check an artifact's integrity signals."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from dokuforge.cli.render import console
from dokuforge.core.verifier import BundleVerifier


def verify_cmd(
    paths: list[Path] = typer.Argument(..., help="Preview, certificate or compiled bundle files."),
) -> None:
    """Verify digests and signatures; exit 1 if any check fails."""
    verifier = BundleVerifier()
    all_ok = True
    for path in paths:
        report = verifier.verify(path)
        all_ok = all_ok and report.ok
        table = Table(title=f"{path.name} ({report.state})")
        table.add_column("Check", style="cyan")
        table.add_column("Result", justify="center")
        for name, passed in report.checks.items():
            table.add_row(name, "[green]PASS[/green]" if passed else "[red]FAIL[/red]")
        console.print(table)
        for message in report.messages:
            console.print(f"  [red]{escape(message)}[/red]")

    if not all_ok:
        raise typer.Exit(code=1)
