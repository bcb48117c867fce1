"""Preview Assembler — merges the active source versions into one document.

Resolves the active agent, plan, criteria and conventions, attaches the
owner and previewer identities, estimates tokens and writes a read-only
snapshot plus a ``preview.sha256`` manifest of the preview directory.

Re-running always regenerates the preview for the agent's lineage.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, ClassVar

from dokuforge.core.documents import (
    CONTENT_SECTIONS,
    PREVIEWER_SIGNATURE,
    base_metadata,
    content_sha256,
    content_tokens,
    strip_transport_fields,
)
from dokuforge.core.fsio import READ_ONLY, atomic_write_json, atomic_write_text, read_json
from dokuforge.core.hasher import compute_document_hash, manifest_lines
from dokuforge.core.layout import ALIASES, EntityType
from dokuforge.core.scanner import SecurityScanError, scan_paths
from dokuforge.core.timestamps import InvalidNameError, validate_id
from dokuforge.core.tokenizer import estimate_section_tokens
from dokuforge.core.version_store import NoActiveVersionError
from dokuforge.errors import ForgeInputError
from dokuforge.models.artifacts import AgentRef, PreviewedArtifact, as_previewed
from dokuforge.models.identity import IdentityRole
from dokuforge.models.targets import lookup_target
from dokuforge.stages.base import BaseStage, Signer

logger = logging.getLogger(__name__)

MANIFEST_NAME = "preview.sha256"
MOCK_KINDS = ("input", "output")


class MockFileValidationError(ForgeInputError):
    """Raised when plan steps reference mock files that do not exist."""

    remediation = "Create the missing files, or re-run with --self-heal to stub them."


def preview_filename(agent_ref: AgentRef) -> str:
    return f"{agent_ref.slug}_preview.json"


def _mock_stem(step_id: Any, index: int) -> str:
    """File stem for a stub mock; unsafe step ids fall back to ``step<index>``."""
    try:
        return validate_id(str(step_id)) if step_id else f"step{index}"
    except InvalidNameError:
        return f"step{index}"


class PreviewStage(BaseStage):
    """Builds the preview snapshot for one agent."""

    stage_id: ClassVar[str] = "preview"
    display_name: ClassVar[str] = "Preview Assembler"

    def assemble_preview(self, agent_id: str) -> PreviewedArtifact:
        """Assemble (and, outside doctor mode, write) the agent's preview."""
        return self.run_stage({"agent_id": agent_id})["artifact"]

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        agent_id: str = run_context["agent_id"]
        warnings: list[str] = []

        agent_dir = self.store.resolve_active(EntityType.AGENT, agent_id)
        agent_ref = AgentRef.parse(agent_dir.name)
        owner = self.resolve_signer(IdentityRole.OWNER, self.config.owner)
        previewer = self.resolve_signer(IdentityRole.PREVIEWER, self.config.previewer)

        plan_dir = self._validate_mocks(
            agent_id, self.store.resolve_active(EntityType.PLAN, agent_id), warnings
        )
        conventions_dir = self.store.resolve_active(EntityType.CONVENTIONS, agent_id)
        try:
            criteria_dir: Path | None = self.store.resolve_active(EntityType.CRITERIA, agent_id)
        except NoActiveVersionError as exc:
            criteria_dir = None
            warnings.append(f"Criteria missing: {exc}")
            logger.warning("No active criteria for %s; recording an error marker", agent_id)

        # -- content -----------------------------------------------------
        document: dict[str, Any] = {}
        source_versions: dict[str, Any] = {}
        for section, entity_type, version_dir in (
            ("agent", EntityType.AGENT, agent_dir),
            ("plan", EntityType.PLAN, plan_dir),
            ("criteria", EntityType.CRITERIA, criteria_dir),
            ("conventions", EntityType.CONVENTIONS, conventions_dir),
        ):
            if version_dir is None:
                document[section] = {
                    "error": f"No active {entity_type.value} version for {agent_id}.",
                    "missing": True,
                }
                source_versions[section] = {"version": None}
                continue
            payload = read_json(self.store.payload_path(entity_type, version_dir))
            clean, transport = strip_transport_fields(payload)
            document[section] = clean
            source_versions[section] = {"version": version_dir.name, **transport}

        document["owner"] = owner.identity.block("owner")
        document["previewer"] = previewer.identity.block("previewer")
        for section, signer in (("owner", owner), ("previewer", previewer)):
            source_versions[section] = {
                "version": f"{signer.identity.name}@{signer.identity.key_version}",
                "role": signer.identity.role.value,
            }
        document["sourceVersions"] = source_versions

        # -- security scan -------------------------------------------------
        scanned = [d for d in (agent_dir, plan_dir, criteria_dir, conventions_dir) if d]
        issues = scan_paths(scanned)
        if issues:
            summary = f"Security scan found {len(issues)} issue(s) in {agent_id} sources."
            if self.config.strict:
                raise SecurityScanError(summary)
            logger.warning(summary)
            for issue in issues:
                logger.warning(
                    "  %s:%d %s (%s)", issue.file, issue.line, issue.pattern, issue.severity.value
                )
            warnings.append(summary)

        # -- integrity signals -------------------------------------------
        estimated = content_tokens(document)
        section_tokens = estimate_section_tokens(document, CONTENT_SECTIONS)
        content_hash = content_sha256(document)
        document["estimatedTokens"] = estimated
        document["sha256"] = content_hash
        self.check_token_budget(estimated, self.config.token_warn_at, "Preview", warnings)

        conventions = document.get("conventions") or {}
        target = lookup_target(
            conventions.get("targetModel") if isinstance(conventions, dict) else None,
            self.config.default_target_model,
        )

        pin = self.config.version_pin
        metadata = base_metadata(pin, pin.preview_format, self.now().isoformat())
        metadata.update(
            {
                "targetModel": target.key,
                "previewerKeyVersion": previewer.identity.key_version,
                "previewerFingerprint": previewer.identity.fingerprint,
                PREVIEWER_SIGNATURE: previewer.sign(content_hash),
            }
        )
        document["metadata"] = metadata
        metadata["sha256"] = compute_document_hash(document)

        previews_dir = self.layout.previews_dir(agent_id)
        preview_path = previews_dir / preview_filename(agent_ref)
        artifact = as_previewed(document, preview_path)
        artifact = artifact.model_copy(
            update={
                "section_tokens": section_tokens,
                "manifest_path": previews_dir / MANIFEST_NAME,
            }
        )

        result: dict[str, Any] = {
            "artifact": artifact,
            "warnings": warnings,
            "scan_issues": issues,
            "target": target,
        }
        if self.config.doctor:
            return result

        # -- write ---------------------------------------------------------
        atomic_write_json(preview_path, document, READ_ONLY)
        previews = sorted(p.name for p in previews_dir.glob("*_preview.json"))
        atomic_write_text(
            previews_dir / MANIFEST_NAME,
            "\n".join(manifest_lines(previews_dir, previews)) + "\n",
            READ_ONLY,
        )
        self._write_records(agent_ref, previewer, artifact, issues, warnings, target.key)
        result["_audit"] = [
            self.audit_entry(
                previewer,
                agent_ref=agent_ref.slug,
                sha256=content_hash,
                artifact_path=str(preview_path),
            )
        ]
        logger.info("Preview written: %s (%d tokens)", preview_path, estimated)
        return result

    # ------------------------------------------------------------------
    # Mock file validation
    # ------------------------------------------------------------------

    def _validate_mocks(self, agent_id: str, plan_dir: Path, warnings: list[str]) -> Path:
        """Check every step's input/output file; self-heal if configured.

        Returns the plan version directory to preview, which is a new
        version when self-heal had to rewrite the plan.
        """
        plan = read_json(self.store.payload_path(EntityType.PLAN, plan_dir))
        steps = plan.get("steps") if isinstance(plan, dict) else None
        missing: list[tuple[int, str, str]] = []
        for index, step in enumerate(steps or []):
            if not isinstance(step, dict):
                continue
            for kind in MOCK_KINDS:
                ref = step.get(kind)
                if isinstance(ref, str) and ref and not self._mock_exists(plan_dir, ref):
                    missing.append((index, kind, ref))
        if not missing:
            return plan_dir

        described = ", ".join(
            f"{steps[i].get('id', f'step{i}')}.{kind} -> {ref}" for i, kind, ref in missing
        )
        if not self.config.self_heal:
            raise MockFileValidationError(
                f"Plan {plan_dir.name} references missing mock files: {described}."
            )
        if self.config.doctor:
            warnings.append(f"Self-heal would stub: {described}")
            return plan_dir
        return self._self_heal(agent_id, plan_dir, plan, missing, warnings)

    @staticmethod
    def _mock_exists(plan_dir: Path, ref: str) -> bool:
        candidate = (plan_dir / ref).resolve()
        return candidate.is_relative_to(plan_dir.resolve()) and candidate.is_file()

    def _self_heal(
        self,
        agent_id: str,
        plan_dir: Path,
        plan: dict[str, Any],
        missing: list[tuple[int, str, str]],
        warnings: list[str],
    ) -> Path:
        """Write a new plan version with stub mocks and rewritten step paths."""
        healed = copy.deepcopy(plan)
        plan_file = self.store.payload_path(EntityType.PLAN, plan_dir)
        extra: dict[str, bytes] = {
            str(p.relative_to(plan_dir)): p.read_bytes()
            for p in sorted(plan_dir.rglob("*"))
            if p.is_file() and p != plan_file
        }
        for index, kind, ref in missing:
            step = healed["steps"][index]
            step_id = _mock_stem(step.get("id"), index)
            rel = f"mocks/{step_id}.{kind}.json"
            extra[rel] = (
                json.dumps({"stub": True, "step": step_id, "kind": kind, "replaces": ref}, indent=2)
                + "\n"
            ).encode("utf-8")
            step[kind] = rel

        aliases = tuple(
            alias
            for alias in ALIASES
            if self.store.resolve_alias(EntityType.PLAN, agent_id, alias) == plan_dir
        )
        new_dir = self.store.put(EntityType.PLAN, agent_id, healed, aliases=aliases, extra_files=extra)
        message = (
            f"Self-heal rewrote plan {plan_dir.name} -> {new_dir.name} "
            f"({len(missing)} stub mock file(s))."
        )
        logger.warning(message)
        warnings.append(message)
        return new_dir

    # ------------------------------------------------------------------
    # Log and report
    # ------------------------------------------------------------------

    def _write_records(
        self,
        agent_ref: AgentRef,
        previewer: Signer,
        artifact: PreviewedArtifact,
        issues: list,
        warnings: list[str],
        target_key: str,
    ) -> None:
        generated_at = artifact.metadata.get("generatedAt", "")
        self.write_log(
            "previews",
            agent_ref.agent_id,
            f"preview@{agent_ref.birth}.log",
            [
                f"{generated_at} previewed {agent_ref.slug} "
                f"signed_by={previewer.identity.name} key_path={previewer.key_path} "
                f"sha256={artifact.content_sha256} tokens={artifact.estimated_tokens}",
                *(f"{generated_at} warning {w}" for w in warnings),
            ],
        )
        self.write_report(
            "previews",
            agent_ref.agent_id,
            f"preview@{agent_ref.birth}.json",
            {
                "agent": agent_ref.slug,
                "generatedAt": generated_at,
                "estimatedTokens": artifact.estimated_tokens,
                "sectionTokens": artifact.section_tokens,
                "targetModel": target_key,
                "sha256": artifact.content_sha256,
                "scanIssues": [i.model_dump(mode="json") for i in issues],
                "warnings": warnings,
            },
        )
