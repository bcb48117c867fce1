"""Shared CLI plumbing: console, settings, agent lookup and error display."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from dokuforge.config import ForgeSettings
from dokuforge.core.layout import EntityType, ForgeLayout
from dokuforge.core.version_store import VersionedArtifactStore
from dokuforge.errors import ForgeError, ForgeInputError, ForgeIntegrityError
from dokuforge.models.config import PipelineConfig

console = Console()


def settings_of(ctx: typer.Context) -> ForgeSettings:
    """Settings resolved by the app callback (fresh ones outside the app)."""
    obj = ctx.find_root().obj
    return obj if isinstance(obj, ForgeSettings) else ForgeSettings()


def build_config(ctx: typer.Context, **overrides: Any) -> PipelineConfig:
    return PipelineConfig.from_settings(settings_of(ctx), **overrides)


def resolve_agent_id(config: PipelineConfig, settings: ForgeSettings, agent: str | None) -> str:
    """``--agent``, then ``DOKUFORGE_AGENT``, then the only agent on file."""
    if agent or settings.agent:
        return agent or settings.agent  # type: ignore[return-value]
    store = VersionedArtifactStore(ForgeLayout(config.root))
    agents = store.list_ids(EntityType.AGENT)
    if len(agents) == 1:
        return agents[0]
    if not agents:
        raise ForgeInputError(
            "No agents found.",
            remediation="Run `dokuforge put agents <id> <identity.json>` first.",
        )
    raise ForgeInputError(
        f"Several agents exist ({', '.join(agents)}).",
        remediation="Choose one with --agent <id> or DOKUFORGE_AGENT.",
    )


@contextmanager
def forge_errors() -> Iterator[None]:
    """Print forge errors with their remediation and exit with code 1."""
    try:
        yield
    except ForgeError as exc:
        kind = "Integrity error" if isinstance(exc, ForgeIntegrityError) else "Error"
        console.print(f"[bold red]{kind}:[/bold red] {escape(str(exc))}")
        if exc.remediation:
            console.print(f"[yellow]Fix:[/yellow] {escape(exc.remediation)}")
        raise typer.Exit(code=1) from exc


def show_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


def result_panel(title: str, rows: list[tuple[str, str]], *, style: str = "green") -> Panel:
    width = max(len(label) for label, _ in rows) + 2
    body = "\n".join(f"[bold]{(label + ':').ljust(width)}[/bold] {value}" for label, value in rows)
    return Panel(body, title=f"[bold]{title}[/bold]", border_style=style, padding=(1, 2))
