"""``dokuforge keygen ROLE`` — create a signing identity, or list them.

Each invocation creates a new key version under
``keys/<role>s/<name>/<timestamp>/`` and moves ``latest`` to it.  The
private key never leaves that directory.
"""

from __future__ import annotations

import typer
from rich.table import Table

from dokuforge.cli.render import build_config, console, forge_errors, result_panel
from dokuforge.core.audit_ledger import AuditLedger
from dokuforge.core.identity_store import IdentityStore
from dokuforge.core.layout import ForgeLayout
from dokuforge.models.identity import (
    TRUST_LEVEL_DESCRIPTIONS,
    IdentityFields,
    IdentityRole,
    TrustLevel,
)
from dokuforge.models.ledger import AuditEntry


def keygen_cmd(
    ctx: typer.Context,
    role: IdentityRole = typer.Argument(..., help="owner, previewer, certifier, compiler or signer."),
    name: str = typer.Option(None, "--name", "-n", help="Identity name (a path-safe slug)."),
    email: str = typer.Option("", "--email", help="Contact email."),
    organization: str = typer.Option("", "--org", help="Organization."),
    trust_level: TrustLevel = typer.Option(
        TrustLevel.CONTRIBUTOR, "--trust-level", help="Trust level recorded with the identity."
    ),
    show: bool = typer.Option(False, "--show", help="List existing identities for ROLE."),
) -> None:
    """Create a new identity for ROLE, or list existing ones with --show."""
    config = build_config(ctx)
    layout = ForgeLayout(config.root)
    store = IdentityStore(layout)

    if show:
        identities = store.list_identities(role)
        if not identities:
            console.print(f"[dim]No {role.value} identities.[/dim]")
            return
        table = Table(title=f"{role.value.capitalize()} identities")
        table.add_column("Name", style="cyan")
        table.add_column("Latest key", style="green")
        table.add_column("Versions", justify="right")
        table.add_column("Trust")
        table.add_column("Fingerprint")
        for identity in identities:
            table.add_row(
                identity.name,
                identity.key_version,
                str(len(store.list_key_versions(role, identity.name))),
                identity.trust_level.value,
                identity.fingerprint[:16],
            )
        console.print(table)
        return

    if not name:
        console.print("[bold red]Error:[/bold red] --name is required unless --show is given.")
        raise typer.Exit(code=1)

    with forge_errors():
        identity = store.create_identity(
            role,
            IdentityFields(
                name=name, email=email, organization=organization, trust_level=trust_level
            ),
        )
        AuditLedger(layout.audit_ledger_path).append(
            AuditEntry(
                stage="keygen",
                signed_by=identity.name,
                key_path=str(store.key_path(identity)),
                fingerprint=identity.fingerprint,
                tool_version=config.version_pin.tool_version,
            )
        )

    console.print(
        result_panel(
            "Identity created",
            [
                ("Role", role.value),
                ("Name", identity.name),
                ("Key version", identity.key_version),
                ("Trust", f"{identity.trust_level.value} ({TRUST_LEVEL_DESCRIPTIONS[identity.trust_level]})"),
                ("Fingerprint", identity.fingerprint),
                ("Private key", str(store.key_path(identity))),
            ],
        )
    )
