"""Tests for lifecycle models, classification and the target registry."""

from __future__ import annotations

import pytest

from dokuforge.models.artifacts import (
    VALID_TRANSITIONS,
    AgentRef,
    ArtifactState,
    InvalidAgentRefError,
    InvalidTransitionError,
    UncertifiedArtifactError,
    agent_ref_of,
    as_certified,
    as_previewed,
    classify_document,
    is_certified,
    require_transition,
)
from dokuforge.models.identity import Identity, IdentityRole
from dokuforge.models.targets import DEFAULT_TARGET, MODEL_TARGETS, lookup_target

SOURCE_VERSIONS = {"agent": {"version": "helper@2025-01-01_00-00-00-000"}}


def _preview() -> dict:
    return {
        "agent": {"agentName": "helper"},
        "previewer": {"previewerName": "pat"},
        "sourceVersions": SOURCE_VERSIONS,
        "estimatedTokens": 10,
        "sha256": "ab" * 32,
        "metadata": {},
    }


def _certificate() -> dict:
    doc = _preview()
    doc["certifier"] = {"certifierName": "cora"}
    doc["metadata"] = {"certifierKeyVersion": "2025-01-01_00-00-00-000", "sha256": "cd" * 32}
    return doc


class TestTransitions:
    def test_stages_cannot_be_skipped(self):
        with pytest.raises(InvalidTransitionError):
            require_transition(ArtifactState.DRAFT, ArtifactState.CERTIFIED)
        with pytest.raises(InvalidTransitionError):
            require_transition(ArtifactState.PREVIEWED, ArtifactState.COMPILED)

    def test_forward_moves_allowed(self):
        require_transition(ArtifactState.DRAFT, ArtifactState.PREVIEWED)
        require_transition(ArtifactState.PREVIEWED, ArtifactState.CERTIFIED)
        require_transition(ArtifactState.CERTIFIED, ArtifactState.COMPILED)

    def test_every_state_listed(self):
        assert set(VALID_TRANSITIONS) == set(ArtifactState)


class TestClassification:
    def test_draft(self):
        assert classify_document({"agent": {}}) is ArtifactState.DRAFT

    def test_previewed(self):
        assert classify_document(_preview()) is ArtifactState.PREVIEWED

    def test_certified(self):
        assert classify_document(_certificate()) is ArtifactState.CERTIFIED

    def test_compiled(self):
        doc = _certificate()
        doc["compiler"] = {"compilerName": "cole"}
        doc["metadata"]["version"] = "v1"
        assert classify_document(doc) is ArtifactState.COMPILED

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: d.pop("certifier"),
            lambda d: d.update(certifier={}),
            lambda d: d["metadata"].pop("certifierKeyVersion"),
            lambda d: d.update(metadata="not a dict"),
        ],
    )
    def test_certification_needs_block_and_key_version(self, mutate):
        doc = _certificate()
        mutate(doc)
        assert not is_certified(doc)

    @pytest.mark.parametrize("document", [[], [1], "cert", None])
    def test_non_object_documents_are_drafts(self, document):
        assert not is_certified(document)
        assert classify_document(document) is ArtifactState.DRAFT


class TestWrappers:
    def test_as_previewed(self, tmp_path):
        artifact = as_previewed(_preview(), tmp_path / "p.json")
        assert artifact.agent_ref == AgentRef(agent_id="helper", birth="2025-01-01_00-00-00-000")
        assert artifact.estimated_tokens == 10

    def test_as_previewed_rejects_certificate(self):
        with pytest.raises(InvalidTransitionError):
            as_previewed(_certificate())

    def test_as_certified(self):
        artifact = as_certified(_certificate())
        assert artifact.certifier_name == "cora"
        assert artifact.sha256 == "cd" * 32

    def test_as_certified_rejects_preview(self, tmp_path):
        with pytest.raises(UncertifiedArtifactError, match="p.json"):
            as_certified(_preview(), tmp_path / "p.json")

    def test_as_certified_rejects_non_object(self, tmp_path):
        with pytest.raises(UncertifiedArtifactError, match="not a JSON object"):
            as_certified([{"certifier": {}}], tmp_path / "c.cert.json")

    def test_as_previewed_rejects_non_object(self):
        with pytest.raises(InvalidTransitionError):
            as_previewed([])


class TestAgentRef:
    def test_parse_round_trip(self):
        ref = AgentRef.parse("helper@2025-01-01_00-00-00-000")
        assert ref.slug == "helper@2025-01-01_00-00-00-000"
        assert str(ref) == ref.slug

    @pytest.mark.parametrize("slug", ["helper", "@2025", "helper@"])
    def test_parse_rejects_malformed(self, slug):
        with pytest.raises(InvalidAgentRefError):
            AgentRef.parse(slug)

    def test_agent_ref_falls_back_to_agent_birth(self):
        doc = {"agent": {"agentName": "helper", "birth": "2025-01-01_00-00-00-000"}}
        assert agent_ref_of(doc).agent_id == "helper"

    def test_agent_ref_missing(self):
        with pytest.raises(InvalidAgentRefError):
            agent_ref_of({"agent": {}})


class TestIdentityModel:
    def test_block_uses_role_prefix(self):
        identity = Identity(
            role=IdentityRole.CERTIFIER,
            name="cora",
            createdAt="2025-01-01_00-00-00-000",
            keyVersion="2025-01-01_00-00-00-000",
            publicKey="aa" * 32,
            fingerprint="bb" * 32,
        )
        block = identity.block("certifier")
        assert block["certifierName"] == "cora"
        assert block["keyVersion"] == "2025-01-01_00-00-00-000"
        assert "privateKey" not in block

    def test_role_directories(self):
        assert IdentityRole.OWNER.directory == "owners"
        assert IdentityRole.SIGNER.directory == "signers"


class TestTargets:
    def test_known_target(self):
        assert lookup_target("claude").max_token_load == 100_000

    def test_family_resolves_to_default_variant(self):
        assert lookup_target("gemini").key == "gemini:pro-1.5"
        assert lookup_target("Mistral").key == "mistral:7b"

    def test_unknown_falls_back(self):
        assert lookup_target("nonsense").key == DEFAULT_TARGET
        assert lookup_target(None, default="gpt4").key == "gpt4"

    def test_registry_keys_match_entries(self):
        assert all(key == target.key for key, target in MODEL_TARGETS.items())
