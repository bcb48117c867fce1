"""Main Typer application — imports and registers all CLI commands.

Entry point: ``dokuforge`` (configured via pyproject.toml project.scripts).

Commands: keygen, put, preview, certify, compile, verify, audit.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.logging import RichHandler

from dokuforge.cli.commands.audit import audit_cmd
from dokuforge.cli.commands.certify import certify_cmd
from dokuforge.cli.commands.compile import compile_cmd
from dokuforge.cli.commands.keygen import keygen_cmd
from dokuforge.cli.commands.preview import preview_cmd
from dokuforge.cli.commands.put import put_cmd
from dokuforge.cli.commands.verify import verify_cmd
from dokuforge.cli.render import console
from dokuforge.config import ForgeSettings

app = typer.Typer(
    name="dokuforge",
    help="dokuforge: signed preview -> certify -> compile pipeline for agent artifacts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    root: Path = typer.Option(
        None, "--root", "-r", help="Workspace root (default: DOKUFORGE_ROOT or .dokuforge)."
    ),
    log_level: str = typer.Option(
        None, "--log-level", help="Logging level (default: DOKUFORGE_LOG_LEVEL or INFO)."
    ),
) -> None:
    """Resolve settings once and install the log handler."""
    overrides = {k: v for k, v in {"root": root, "log_level": log_level}.items() if v is not None}
    settings = ForgeSettings(**overrides)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
    ctx.obj = settings


# Register subcommands
app.command(name="keygen", help="Create (or list) signing identities.")(keygen_cmd)
app.command(name="put", help="Store a new version of an agent source entity.")(put_cmd)
app.command(name="preview", help="Assemble the read-only preview for an agent.")(preview_cmd)
app.command(name="certify", help="Certify the agent's current preview.")(certify_cmd)
app.command(name="compile", help="Compile certificates into versioned bundles.")(compile_cmd)
app.command(name="verify", help="Re-check every signature and digest of an artifact.")(verify_cmd)
app.command(name="audit", help="Verify and show the hash-chained audit ledger.")(audit_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
