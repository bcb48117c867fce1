"""``dokuforge compile [CERT ...]`` — compile certificates into bundles.

Without arguments the agent's current certificate is compiled.  A batch
either compiles completely or writes nothing.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from dokuforge.cli.render import (
    build_config,
    console,
    forge_errors,
    resolve_agent_id,
    settings_of,
    show_warnings,
)
from dokuforge.core.layout import EntityType
from dokuforge.models.artifacts import AgentRef
from dokuforge.stages.compile import CompileStage, load_certified


def compile_cmd(
    ctx: typer.Context,
    certificates: list[Path] = typer.Argument(None, help="Certificate files (.cert.json)."),
    agent: str = typer.Option(None, "--agent", "-a", help="Agent id (default: the only agent)."),
    compiler: str = typer.Option(None, "--compiler", help="Compiler identity name."),
    force: bool = typer.Option(False, "--force", help="Skip unreadable BYO files instead of failing."),
    strict: bool = typer.Option(None, "--strict/--no-strict", help="Fail when over the token budget."),
    doctor: bool = typer.Option(False, "--doctor", help="Run every check but write nothing."),
) -> None:
    """Compile certified artifacts, all or nothing."""
    with forge_errors():
        config = build_config(ctx, compiler=compiler, force=force, strict=strict, doctor=doctor)
        stage = CompileStage(config)
        paths = list(certificates or [])
        if not paths:
            agent_id = resolve_agent_id(config, settings_of(ctx), agent)
            agent_ref = AgentRef.parse(stage.store.active_version(EntityType.AGENT, agent_id))
            paths = [stage.certificate_path_for(agent_ref)]
        missing = [p for p in paths if not p.is_file()]
        if missing:
            console.print(
                f"[bold red]Error:[/bold red] certificate not found: {', '.join(map(str, missing))}"
            )
            console.print("[yellow]Fix:[/yellow] Run `dokuforge certify` first.")
            raise typer.Exit(code=1)
        result = stage.run_stage({"certified": [load_certified(p) for p in paths]})

    show_warnings(result["warnings"])
    table = Table(title="Compiled (doctor: not written)" if config.doctor else "Compiled")
    table.add_column("Agent", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("File")
    table.add_column("sha256")
    for artifact in result["artifacts"]:
        table.add_row(
            artifact.agent_ref.slug, artifact.version, str(artifact.path), artifact.sha256[:16]
        )
    console.print(table)
