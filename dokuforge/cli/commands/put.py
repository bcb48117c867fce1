"""``dokuforge put TYPE ID FILE`` — store a new version of a source entity.

Ingests the JSON produced by the authoring wizards.  The new version is
aliased ``latest`` (and ``current`` with ``--current``).  BYO files are
validated as a JSON array of objects.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from dokuforge.cli.render import build_config, console, forge_errors, result_panel
from dokuforge.core.byo import import_byo
from dokuforge.core.layout import CURRENT, LATEST, EntityType, ForgeLayout
from dokuforge.core.version_store import VersionedArtifactStore
from dokuforge.errors import ForgeInputError


def put_cmd(
    ctx: typer.Context,
    entity_type: EntityType = typer.Argument(..., help="agents, plans, criteria, conventions or byo."),
    entity_id: str = typer.Argument(..., help="Agent id the entity belongs to."),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON payload."),
    current: bool = typer.Option(False, "--current", help="Also point the 'current' alias at it."),
) -> None:
    """Store FILE as a new version of ENTITY_TYPE/ENTITY_ID."""
    config = build_config(ctx)
    store = VersionedArtifactStore(ForgeLayout(config.root))
    aliases = (LATEST, CURRENT) if current else (LATEST,)

    with forge_errors():
        if entity_type is EntityType.BYO:
            version_dir = import_byo(store, entity_id, file)
            if current:
                store.set_alias(entity_type, entity_id, CURRENT, version_dir.name)
        else:
            try:
                payload = json.loads(file.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise ForgeInputError(f"{file} is not valid JSON: {exc}") from exc
            if not isinstance(payload, dict):
                raise ForgeInputError(f"{file} must contain a JSON object.")
            version_dir = store.put(entity_type, entity_id, payload, aliases=aliases)

    console.print(
        result_panel(
            "Version stored",
            [
                ("Entity", f"{entity_type.value}/{entity_id}"),
                ("Version", version_dir.name),
                ("Aliases", ", ".join(aliases)),
            ],
        )
    )
