"""Compiler — seals certificates into immutable, versioned bundles.

Every gate runs for the whole batch before the first file is written, so
one bad certificate aborts the run with nothing left in ``ops/compiled``.

Versions are ``v1, v2, ...`` per ``(agent, birth)`` lineage.  The next
number comes from a counter file kept beside the bundles, cross-checked
against a scan of the bundles themselves; existing files are never
overwritten.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, ClassVar

from dokuforge.core.byo import load_byo
from dokuforge.core.documents import COMPILER_SIGNATURE, compiled_hash
from dokuforge.core.fsio import READ_ONLY, atomic_write_json, atomic_write_text, read_json
from dokuforge.core.layout import EntityType
from dokuforge.core.verifier import (
    check_certifier_signature,
    check_sidecar,
    sidecar_path,
)
from dokuforge.errors import ForgeInputError, ForgeIntegrityError
from dokuforge.models.artifacts import (
    AgentRef,
    ArtifactState,
    CertifiedArtifact,
    CompiledArtifact,
    as_certified,
    classify_document,
    require_transition,
)
from dokuforge.models.identity import IdentityRole
from dokuforge.models.targets import ModelTarget, lookup_target
from dokuforge.stages.base import BaseStage, Signer

logger = logging.getLogger(__name__)


class PlanIdentityMismatchError(ForgeIntegrityError):
    """Raised when a certificate was issued against a plan that is no longer active."""

    remediation = "Re-run preview and certify against the active plan, then compile."


class UnreadableCertificateError(ForgeInputError):
    """Raised when a certificate file cannot be read as JSON."""

    remediation = "Pass the .cert.json file written by `dokuforge certify`."


class CompiledVersionExistsError(ForgeIntegrityError):
    """Raised instead of overwriting an existing compiled version."""


class CertificateValidityError(ForgeIntegrityError):
    """Raised when a certificate is outside its validity window."""

    remediation = "Re-certify the preview with a fresh validity window."


def compiled_filename(agent_ref: AgentRef, version: int) -> str:
    return f"{agent_ref.slug}.compiled.v{version}.cert.json"


def _version_pattern(agent_ref: AgentRef) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(agent_ref.slug)}\.compiled\.v(\d+)\.cert\.json$")


def load_certified(path: Path) -> CertifiedArtifact:
    """Read a certificate from disk into its typed wrapper.

    Raises ``UncertifiedArtifactError`` for anything that is not certified.
    """
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise UnreadableCertificateError(f"Cannot read certificate {path}: {exc}") from exc
    return as_certified(document, path)


class CompileStage(BaseStage):
    """Compiles one or more certificates."""

    stage_id: ClassVar[str] = "compile"
    display_name: ClassVar[str] = "Compiler"

    def compile(
        self,
        certified: list[CertifiedArtifact],
        compiler: str | None = None,
    ) -> list[CompiledArtifact]:
        """Compile every certificate in *certified*, or none of them."""
        return self.run_stage({"certified": list(certified), "compiler": compiler})["artifacts"]

    def compile_paths(self, paths: list[Path], compiler: str | None = None) -> list[CompiledArtifact]:
        """Load certificates from disk, then compile them as one batch."""
        return self.compile([load_certified(p) for p in paths], compiler)

    def certificate_path_for(self, agent_ref: AgentRef) -> Path:
        return self.layout.certified_dir(agent_ref.agent_id) / f"{agent_ref.slug}.cert.json"

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        batch: list[CertifiedArtifact] = run_context["certified"]
        if not batch:
            raise ForgeInputError("No certified artifacts to compile.")
        signer = self.resolve_signer(
            IdentityRole.COMPILER, run_context.get("compiler") or self.config.compiler
        )
        now = self.now()
        warnings: list[str] = []

        # -- gates (whole batch) ------------------------------------------
        byo_cache: dict[str, tuple[list[dict[str, Any]], str | None]] = {}
        targets: list[ModelTarget] = []
        for cert in batch:
            self._check_certificate(cert, now)
            agent_id = cert.agent_ref.agent_id
            if agent_id not in byo_cache:
                byo_cache[agent_id] = load_byo(self.store, agent_id, force=self.config.force)
            conventions = cert.document.get("conventions") or {}
            target = lookup_target(
                conventions.get("targetModel") if isinstance(conventions, dict) else None,
                self.config.default_target_model,
            )
            self.check_token_budget(
                int(cert.document.get("estimatedTokens", 0)),
                target.ideal_briefing_size,
                f"{cert.agent_ref.slug} for {target.label}",
                warnings,
            )
            targets.append(target)

        # -- build and write ----------------------------------------------
        artifacts: list[CompiledArtifact] = []
        audit = []
        issued: dict[str, int] = {}
        for cert, target in zip(batch, targets):
            byo_items, byo_version = byo_cache[cert.agent_ref.agent_id]
            tokens = int(cert.document.get("estimatedTokens", 0))
            slug = cert.agent_ref.slug
            # doctor runs never write the counter
            version = max(self._next_version(cert.agent_ref), issued.get(slug, 0) + 1)
            issued[slug] = version
            bundle = self._build_bundle(cert, signer, version, byo_items, byo_version, now)
            out_path = self.layout.compiled_dir(cert.agent_ref.agent_id) / compiled_filename(
                cert.agent_ref, version
            )
            artifact = CompiledArtifact(
                agent_ref=cert.agent_ref,
                document=bundle,
                path=out_path,
                version=bundle["metadata"]["version"],
                sha256=bundle["metadata"]["sha256"],
                sidecar_path=sidecar_path(out_path),
            )
            artifacts.append(artifact)
            if self.config.doctor:
                continue

            self._write_bundle(artifact, version)
            self._write_records(cert, signer, artifact, target.key, tokens, len(byo_items), warnings)
            audit.append(
                self.audit_entry(
                    signer,
                    agent_ref=cert.agent_ref.slug,
                    sha256=artifact.sha256,
                    artifact_path=str(out_path),
                )
            )
            logger.info("Compiled %s %s -> %s", cert.agent_ref.slug, artifact.version, out_path)

        return {"artifacts": artifacts, "warnings": warnings, "_audit": audit}

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    def _check_certificate(self, cert: CertifiedArtifact, now: datetime) -> None:
        require_transition(classify_document(cert.document), ArtifactState.COMPILED)
        check_certifier_signature(cert.document)
        if cert.path is not None and cert.path.exists():
            check_sidecar(cert.path, cert.document)

        meta = cert.metadata
        try:
            valid_from = datetime.fromisoformat(str(meta["validFrom"]))
            valid_until = datetime.fromisoformat(str(meta["validUntil"]))
        except (KeyError, ValueError) as exc:
            raise CertificateValidityError(
                f"{cert.agent_ref.slug}: certificate has no usable validity window."
            ) from exc
        if not valid_from <= now <= valid_until:
            raise CertificateValidityError(
                f"{cert.agent_ref.slug}: certificate valid {valid_from.isoformat()} "
                f"to {valid_until.isoformat()}, now {now.isoformat()}."
            )

        self._check_plan_identity(cert)

    def _check_plan_identity(self, cert: CertifiedArtifact) -> None:
        agent_id = cert.agent_ref.agent_id
        certified_plan = (cert.document.get("sourceVersions", {}).get("plan") or {}).get("version")
        active_plan = self.store.active_version(EntityType.PLAN, agent_id)
        if certified_plan != active_plan:
            raise PlanIdentityMismatchError(
                f"{cert.agent_ref.slug} was certified against plan {certified_plan}, "
                f"but the active plan is {active_plan}."
            )

        active_agent = self.store.active_version(EntityType.AGENT, agent_id)
        plan = cert.document.get("plan") or {}
        declared = plan.get("agentId") if isinstance(plan, dict) else None
        if declared and declared not in (agent_id, active_agent):
            raise PlanIdentityMismatchError(
                f"Plan declares agentId {declared!r}, but the active agent is {active_agent}."
            )

    # ------------------------------------------------------------------
    # Versioning
    # ------------------------------------------------------------------

    def _counter_path(self, agent_ref: AgentRef) -> Path:
        return self.layout.compiled_dir(agent_ref.agent_id) / f".{agent_ref.slug}.counter.json"

    def _scan_versions(self, agent_ref: AgentRef) -> list[int]:
        compiled_dir = self.layout.compiled_dir(agent_ref.agent_id)
        if not compiled_dir.is_dir():
            return []
        pattern = _version_pattern(agent_ref)
        return sorted(
            int(m.group(1)) for p in compiled_dir.iterdir() if (m := pattern.match(p.name))
        )

    def _next_version(self, agent_ref: AgentRef) -> int:
        """``max(counter, highest scanned version) + 1``."""
        counter_path = self._counter_path(agent_ref)
        counter = int(read_json(counter_path).get("version", 0)) if counter_path.is_file() else 0
        scanned = self._scan_versions(agent_ref)
        highest = scanned[-1] if scanned else 0
        if counter != highest:
            logger.warning(
                "Version counter for %s says v%d but %d compiled file(s) found (highest v%d); "
                "continuing from the higher value",
                agent_ref.slug,
                counter,
                len(scanned),
                highest,
            )
        return max(counter, highest) + 1

    # ------------------------------------------------------------------
    # Build and write
    # ------------------------------------------------------------------

    def _build_bundle(
        self,
        cert: CertifiedArtifact,
        signer: Signer,
        version: int,
        byo_items: list[dict[str, Any]],
        byo_version: str | None,
        now: datetime,
    ) -> dict[str, Any]:
        cert_meta = cert.metadata
        bundle = {k: v for k, v in cert.document.items() if k != "metadata"}
        bundle["compiler"] = signer.identity.block("compiler")
        bundle["compiledAt"] = now.isoformat()
        bundle["globalByo"] = byo_items

        metadata = {k: v for k, v in cert_meta.items() if k != "sha256"}
        metadata.update(
            {
                "version": f"v{version}",
                "bundleFormat": self.config.version_pin.compiled_format,
                "compilerKeyVersion": signer.identity.key_version,
                "compilerFingerprint": signer.identity.fingerprint,
                "byoVersion": byo_version,
                "certifiedSha256": cert_meta.get("sha256", ""),
            }
        )
        bundle["metadata"] = metadata
        digest = compiled_hash(bundle)
        metadata["sha256"] = digest
        metadata[COMPILER_SIGNATURE] = signer.sign(digest)
        return bundle

    def _write_bundle(self, artifact: CompiledArtifact, version: int) -> None:
        if artifact.path.exists() or artifact.sidecar_path.exists():
            raise CompiledVersionExistsError(
                f"{artifact.path.name} already exists; compiled versions are never overwritten."
            )
        atomic_write_json(artifact.path, artifact.document, READ_ONLY)
        atomic_write_text(artifact.sidecar_path, artifact.sha256, READ_ONLY)
        atomic_write_json(
            self._counter_path(artifact.agent_ref),
            {"lineage": artifact.agent_ref.slug, "version": version},
        )

    def _write_records(
        self,
        cert: CertifiedArtifact,
        signer: Signer,
        artifact: CompiledArtifact,
        target_key: str,
        tokens: int,
        byo_count: int,
        warnings: list[str],
    ) -> None:
        agent_ref = cert.agent_ref
        stamp = artifact.document["compiledAt"]
        self.write_log(
            "compiled",
            agent_ref.agent_id,
            f"compile@{agent_ref.birth}.log",
            [
                f"{stamp} compiled {agent_ref.slug} {artifact.version} "
                f"signed_by={signer.identity.name} key_path={signer.key_path} "
                f"sha256={artifact.sha256} certified_sha256={cert.sha256} byo_items={byo_count}",
                *(f"{stamp} warning {w}" for w in warnings),
            ],
        )
        report_path = self.layout.reports_dir("compiled", agent_ref.agent_id) / (
            f"compile@{agent_ref.birth}.json"
        )
        report = read_json(report_path) if report_path.is_file() else {"agent": agent_ref.slug}
        report.setdefault("versions", []).append(
            {
                "version": artifact.version,
                "path": str(artifact.path),
                "sha256": artifact.sha256,
                "compiler": signer.identity.name,
                "compiledAt": stamp,
                "targetModel": target_key,
                "estimatedTokens": tokens,
                "byoItems": byo_count,
            }
        )
        report["latestVersion"] = artifact.version
        self.write_report("compiled", agent_ref.agent_id, f"compile@{agent_ref.birth}.json", report)
