"""``dokuforge preview`` — assemble the agent's read-only preview."""

from __future__ import annotations

import typer
from rich.table import Table

from dokuforge.cli.render import (
    build_config,
    console,
    forge_errors,
    resolve_agent_id,
    result_panel,
    settings_of,
    show_warnings,
)
from dokuforge.stages.preview import PreviewStage


def preview_cmd(
    ctx: typer.Context,
    agent: str = typer.Option(None, "--agent", "-a", help="Agent id (default: the only agent)."),
    owner: str = typer.Option(None, "--owner", help="Owner identity name."),
    previewer: str = typer.Option(None, "--previewer", help="Previewer identity name."),
    self_heal: bool = typer.Option(
        None, "--self-heal/--no-self-heal", help="Stub missing mock files and rewrite the plan."
    ),
    strict: bool = typer.Option(
        None, "--strict/--no-strict", help="Fail on scan issues and token budget excess."
    ),
    doctor: bool = typer.Option(False, "--doctor", help="Run every check but write nothing."),
) -> None:
    """Merge the active agent sources into a preview snapshot."""
    with forge_errors():
        config = build_config(
            ctx,
            owner=owner,
            previewer=previewer,
            self_heal=self_heal,
            strict=strict,
            doctor=doctor,
        )
        agent_id = resolve_agent_id(config, settings_of(ctx), agent)
        result = PreviewStage(config).run_stage({"agent_id": agent_id})

    artifact = result["artifact"]
    show_warnings(result["warnings"])

    table = Table(title=f"Token estimate ({result['target'].label})")
    table.add_column("Section", style="cyan")
    table.add_column("Tokens", justify="right")
    for section, tokens in artifact.section_tokens.items():
        table.add_row(section, str(tokens))
    table.add_row("[bold]total[/bold]", f"[bold]{artifact.estimated_tokens}[/bold]")
    console.print(table)

    console.print(
        result_panel(
            "Preview (doctor: not written)" if config.doctor else "Preview written",
            [
                ("Agent", artifact.agent_ref.slug),
                ("File", str(artifact.path)),
                ("Content sha256", artifact.content_sha256),
                ("Scan issues", str(len(result["scan_issues"]))),
            ],
            style="yellow" if result["warnings"] else "green",
        )
    )
