"""Shared test fixtures for dokuforge."""

from __future__ import annotations

import json
import os
import stat
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from dokuforge.core.audit_ledger import AuditLedger
from dokuforge.core.identity_store import IdentityStore
from dokuforge.core.layout import EntityType, ForgeLayout
from dokuforge.core.version_store import VersionedArtifactStore
from dokuforge.models.artifacts import CertifiedArtifact, PreviewedArtifact
from dokuforge.models.config import PipelineConfig
from dokuforge.models.identity import IdentityFields, IdentityRole, TrustLevel
from dokuforge.stages.certify import CertifyStage
from dokuforge.stages.compile import CompileStage
from dokuforge.stages.preview import PreviewStage

AGENT_ID = "helper"

AGENT_PAYLOAD: dict[str, Any] = {
    "agentName": AGENT_ID,
    "description": "Answers billing questions for the support desk",
    "roles": ["support"],
    "cliVersion": "0.3.0",
    "schemaVersion": "v1.0.0",
    "createdVia": "wizard",
}

PLAN_PAYLOAD: dict[str, Any] = {
    "agentId": AGENT_ID,
    "description": "Look up the invoice, then summarise it for the customer",
    "steps": [
        {"id": "lookup", "goal": "Find the invoice", "input": "mocks/lookup.in.json", "output": "mocks/lookup.out.json"},
        {"id": "summarise", "goal": "Write a short answer"},
    ],
    "cliVersion": "0.3.0",
}

PLAN_MOCKS: dict[str, bytes] = {
    "mocks/lookup.in.json": b'{"invoice": "INV-1"}\n',
    "mocks/lookup.out.json": b'{"total": 42}\n',
}

CRITERIA_PAYLOAD: dict[str, Any] = {
    "successConditions": ["Customer receives the invoice total"],
    "failureConditions": ["Leaks another customer's data"],
}

CONVENTIONS_PAYLOAD: dict[str, Any] = {
    "targetModel": "claude",
    "tone": "friendly",
}


@dataclass
class Workspace:
    """A seeded workspace: identities on file and one agent with sources."""

    layout: ForgeLayout
    store: VersionedArtifactStore
    identities: IdentityStore
    config: PipelineConfig
    agent_id: str = AGENT_ID

    @property
    def ledger(self) -> AuditLedger:
        return AuditLedger(self.layout.audit_ledger_path)

    def with_config(self, **overrides: Any) -> PipelineConfig:
        return self.config.model_copy(update=overrides)

    def preview_stage(self, **overrides: Any) -> PreviewStage:
        return PreviewStage(self.with_config(**overrides))

    def certify_stage(self, **overrides: Any) -> CertifyStage:
        return CertifyStage(self.with_config(**overrides))

    def compile_stage(self, **overrides: Any) -> CompileStage:
        return CompileStage(self.with_config(**overrides))


def make_writable(path: Path) -> None:
    """Undo the read-only bit so a test can tamper with an artifact."""
    os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)


def rewrite_json(path: Path, document: dict[str, Any]) -> None:
    make_writable(path)
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")


@pytest.fixture
def layout(tmp_path: Path) -> ForgeLayout:
    """Provide an empty workspace layout in a temp directory."""
    return ForgeLayout(tmp_path / ".dokuforge")


@pytest.fixture
def store(layout: ForgeLayout) -> VersionedArtifactStore:
    return VersionedArtifactStore(layout)


@pytest.fixture
def identities(layout: ForgeLayout) -> IdentityStore:
    return IdentityStore(layout)


@pytest.fixture
def make_identity(identities: IdentityStore) -> Callable[..., Any]:
    """Factory fixture: create an identity with sensible defaults."""

    def _factory(role: IdentityRole, name: str, **fields: Any):
        return identities.create_identity(
            role,
            IdentityFields(
                name=name,
                email=fields.pop("email", f"{name}@example.org"),
                organization=fields.pop("organization", "Example Org"),
                trust_level=fields.pop("trust_level", TrustLevel.INTERNAL),
            ),
            **fields,
        )

    return _factory


@pytest.fixture
def workspace(
    layout: ForgeLayout,
    store: VersionedArtifactStore,
    identities: IdentityStore,
    make_identity: Callable[..., Any],
) -> Workspace:
    """A workspace with one identity per role and a complete agent."""
    make_identity(IdentityRole.OWNER, "olivia")
    make_identity(IdentityRole.PREVIEWER, "pat")
    make_identity(IdentityRole.CERTIFIER, "cora")
    make_identity(IdentityRole.COMPILER, "cole")

    store.put(EntityType.AGENT, AGENT_ID, AGENT_PAYLOAD)
    store.put(EntityType.PLAN, AGENT_ID, PLAN_PAYLOAD, extra_files=PLAN_MOCKS)
    store.put(EntityType.CRITERIA, AGENT_ID, CRITERIA_PAYLOAD)
    store.put(EntityType.CONVENTIONS, AGENT_ID, CONVENTIONS_PAYLOAD)

    return Workspace(
        layout=layout,
        store=store,
        identities=identities,
        config=PipelineConfig(root=layout.root),
    )


@pytest.fixture
def previewed(workspace: Workspace) -> PreviewedArtifact:
    """The workspace's agent after a successful preview."""
    return workspace.preview_stage().assemble_preview(workspace.agent_id)


@pytest.fixture
def certified(workspace: Workspace, previewed: PreviewedArtifact) -> CertifiedArtifact:
    """The workspace's agent after preview and certify."""
    assert previewed.path is not None
    return workspace.certify_stage().certify(previewed.path)
