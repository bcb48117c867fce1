"""``dokuforge certify`` — certify the agent's current preview."""

from __future__ import annotations

import typer

from dokuforge.cli.render import (
    build_config,
    console,
    forge_errors,
    resolve_agent_id,
    result_panel,
    settings_of,
)
from dokuforge.core.layout import EntityType
from dokuforge.models.artifacts import AgentRef
from dokuforge.stages.certify import CertifyStage


def certify_cmd(
    ctx: typer.Context,
    agent: str = typer.Option(None, "--agent", "-a", help="Agent id (default: the only agent)."),
    certifier: str = typer.Option(None, "--certifier", help="Certifier identity name."),
    validity: str = typer.Option(None, "--validity", help="Validity period, e.g. 30d, 6m, 1y."),
    experimental: bool = typer.Option(False, "--experimental", help="Mark the certificate experimental."),
    doctor: bool = typer.Option(False, "--doctor", help="Run every check but write nothing."),
) -> None:
    """Verify the preview and issue a signed certificate."""
    with forge_errors():
        config = build_config(
            ctx,
            certifier=certifier,
            validity=validity,
            experimental=experimental,
            doctor=doctor,
        )
        agent_id = resolve_agent_id(config, settings_of(ctx), agent)
        stage = CertifyStage(config)
        agent_ref = AgentRef.parse(stage.store.active_version(EntityType.AGENT, agent_id))
        artifact = stage.certify(stage.preview_path_for(agent_ref))

    console.print(
        result_panel(
            "Certificate (doctor: not written)" if config.doctor else "Certified",
            [
                ("Agent", artifact.agent_ref.slug),
                ("Certifier", f"{artifact.certifier_name} ({artifact.certifier_key_version})"),
                ("Valid until", str(artifact.metadata.get("validUntil"))),
                ("File", str(artifact.path)),
                ("sha256", artifact.sha256),
            ],
        )
    )
