"""Unit tests for the CLI — Typer command registration and the end-to-end flow.

Every command runs against a throwaway workspace passed with ``--root``.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from dokuforge.cli.app import app
from dokuforge.core.audit_ledger import AuditLedger
from dokuforge.core.layout import ForgeLayout

from conftest import AGENT_PAYLOAD, CONVENTIONS_PAYLOAD, CRITERIA_PAYLOAD, PLAN_PAYLOAD

runner = CliRunner()


@pytest.fixture
def root(tmp_path, monkeypatch) -> Path:
    """Workspace root; the working directory is moved so no .env leaks in."""
    monkeypatch.chdir(tmp_path)
    for var in ("DOKUFORGE_ROOT", "DOKUFORGE_AGENT", "DOKUFORGE_STRICT", "DOKUFORGE_SELF_HEAL"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path / "forge"


def invoke(root: Path, *args: str):
    return runner.invoke(app, ["--root", str(root), *args])


def flat(output: str) -> str:
    """Collapse the line wrapping rich applies to long messages."""
    return " ".join(output.split())


def _write(tmp_path: Path, name: str, payload) -> str:
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


@pytest.fixture
def seeded(root: Path, tmp_path: Path) -> Path:
    """Identities for every role plus one agent, all created through the CLI."""
    for role, name in (("owner", "olivia"), ("previewer", "pat"), ("certifier", "cora"), ("compiler", "cole")):
        result = invoke(root, "keygen", role, "--name", name, "--email", f"{name}@example.org")
        assert result.exit_code == 0, result.output
    for entity, payload in (
        ("agents", AGENT_PAYLOAD),
        ("plans", PLAN_PAYLOAD),
        ("criteria", CRITERIA_PAYLOAD),
        ("conventions", CONVENTIONS_PAYLOAD),
    ):
        result = invoke(root, "put", entity, "helper", _write(tmp_path, f"{entity}.json", payload))
        assert result.exit_code == 0, result.output
    return root


# ---------------------------------------------------------------------------
# Test: CLI help and registration
# ---------------------------------------------------------------------------


class TestCliApp:
    """The CLI must register all expected commands and show help."""

    def test_help_flag(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("keygen", "put", "preview", "certify", "compile", "verify", "audit"):
            assert command in result.output

    @pytest.mark.parametrize("command", ["keygen", "put", "preview", "certify", "compile", "verify", "audit"])
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


# ---------------------------------------------------------------------------
# Test: keygen and put
# ---------------------------------------------------------------------------


class TestKeygen:
    def test_creates_identity_and_audit_entry(self, root):
        result = invoke(root, "keygen", "certifier", "--name", "cora", "--trust-level", "internal")
        assert result.exit_code == 0, result.output
        layout = ForgeLayout(root)
        assert (layout.keys_dir / "certifiers" / "cora" / "latest").is_symlink()
        entries = AuditLedger(layout.audit_ledger_path).entries()
        assert [e.stage for e in entries] == ["keygen"]
        assert entries[0].signed_by == "cora"

    def test_private_key_not_printed(self, root):
        result = invoke(root, "keygen", "owner", "--name", "olivia")
        layout = ForgeLayout(root)
        [key_file] = (layout.keys_dir / "owners" / "olivia").glob("latest/olivia.private.key")
        assert key_file.read_text(encoding="utf-8").strip() not in result.output

    def test_name_required(self, root):
        result = invoke(root, "keygen", "owner")
        assert result.exit_code == 1
        assert "--name" in result.output

    def test_unknown_role(self, root):
        result = invoke(root, "keygen", "janitor", "--name", "x")
        assert result.exit_code != 0

    def test_show(self, root):
        invoke(root, "keygen", "compiler", "--name", "cole")
        result = invoke(root, "keygen", "compiler", "--show")
        assert result.exit_code == 0
        assert "cole" in result.output


class TestPut:
    def test_rejects_invalid_json(self, root, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope", encoding="utf-8")
        result = invoke(root, "put", "plans", "helper", str(bad))
        assert result.exit_code == 1
        assert "not valid JSON" in flat(result.output)

    def test_current_alias(self, root, tmp_path):
        result = invoke(root, "put", "agents", "helper", _write(tmp_path, "a.json", AGENT_PAYLOAD), "--current")
        assert result.exit_code == 0, result.output
        assert (ForgeLayout(root).data_dir / "agents" / "helper" / "current").is_symlink()

    def test_byo_must_be_array(self, root, tmp_path):
        result = invoke(root, "put", "byo", "helper", _write(tmp_path, "byo.json", {"a": 1}))
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# Test: pipeline commands
# ---------------------------------------------------------------------------


class TestPipelineCommands:
    def test_preview_requires_mocks(self, seeded):
        result = invoke(seeded, "preview")
        assert result.exit_code == 1
        assert "self-heal" in result.output

    def test_full_flow(self, seeded):
        layout = ForgeLayout(seeded)

        result = invoke(seeded, "preview", "--self-heal")
        assert result.exit_code == 0, result.output
        [preview] = layout.previews_dir("helper").glob("*_preview.json")

        result = invoke(seeded, "certify", "--validity", "30d")
        assert result.exit_code == 0, result.output
        [cert] = layout.certified_dir("helper").glob("*.cert.json")

        result = invoke(seeded, "compile")
        assert result.exit_code == 0, result.output
        result = invoke(seeded, "compile", str(cert))
        assert result.exit_code == 0, result.output
        compiled = sorted(p.name for p in layout.compiled_dir("helper").glob("*.compiled.v*.cert.json"))
        assert [name.split(".compiled.")[1] for name in compiled] == ["v1.cert.json", "v2.cert.json"]

        result = invoke(seeded, "verify", str(preview), str(cert), *map(str, layout.compiled_dir("helper").glob("*.cert.json")))
        assert result.exit_code == 0, result.output

        result = invoke(seeded, "audit", "--agent", "helper")
        assert result.exit_code == 0, result.output
        stages = [e.stage for e in AuditLedger(layout.audit_ledger_path).entries()]
        assert stages.count("keygen") == 4
        assert stages[-4:] == ["preview", "certify", "compile", "compile"]

    def test_certify_without_preview(self, seeded):
        result = invoke(seeded, "certify")
        assert result.exit_code == 1

    def test_compile_without_certificate(self, seeded):
        result = invoke(seeded, "compile")
        assert result.exit_code == 1
        assert "certify" in result.output
        assert not ForgeLayout(seeded).compiled_dir("helper").exists()

    def test_compile_rejects_preview_file(self, seeded):
        invoke(seeded, "preview", "--self-heal")
        [preview] = ForgeLayout(seeded).previews_dir("helper").glob("*_preview.json")
        result = invoke(seeded, "compile", str(preview))
        assert result.exit_code == 1
        assert "not certified" in flat(result.output)

    @pytest.mark.parametrize(
        ("text", "message"),
        [("[]", "not a JSON object"), ("{broken", "Cannot read certificate")],
    )
    def test_compile_rejects_malformed_certificate(self, seeded, tmp_path, text, message):
        bad = tmp_path / "bad.cert.json"
        bad.write_text(text, encoding="utf-8")
        result = invoke(seeded, "compile", str(bad))
        assert result.exit_code == 1
        assert message in flat(result.output)

    def test_verify_reports_non_object_file(self, seeded, tmp_path):
        bad = tmp_path / "list.cert.json"
        bad.write_text("[]", encoding="utf-8")
        result = invoke(seeded, "verify", str(bad))
        assert result.exit_code == 1
        assert "unreadable" in result.output
        assert "JSON object" in flat(result.output)

    def test_doctor_preview_writes_nothing(self, seeded):
        result = invoke(seeded, "preview", "--self-heal", "--doctor")
        assert result.exit_code == 0, result.output
        assert not ForgeLayout(seeded).previews_dir("helper").exists()

    def test_ambiguous_agent(self, seeded, tmp_path):
        invoke(seeded, "put", "agents", "router", _write(tmp_path, "r.json", {"agentName": "router"}))
        result = invoke(seeded, "preview")
        assert result.exit_code == 1
        assert "--agent" in result.output

    def test_verify_detects_tampering(self, seeded):
        invoke(seeded, "preview", "--self-heal")
        [preview] = ForgeLayout(seeded).previews_dir("helper").glob("*_preview.json")
        document = json.loads(preview.read_text(encoding="utf-8"))
        document["estimatedTokens"] += 7
        preview.chmod(0o644)
        preview.write_text(json.dumps(document), encoding="utf-8")
        result = invoke(seeded, "verify", str(preview))
        assert result.exit_code == 1

    def test_audit_detects_tampering(self, seeded):
        path = ForgeLayout(seeded).audit_ledger_path
        lines = path.read_text(encoding="utf-8").splitlines()
        record = json.loads(lines[0])
        record["signed_by"] = "mallory"
        lines[0] = json.dumps(record, sort_keys=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        result = invoke(seeded, "audit")
        assert result.exit_code == 1
        assert "Integrity error" in flat(result.output)
