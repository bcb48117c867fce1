"""Certifier — turns one verified preview into a signed, immutable certificate.

Gates, in order, each aborting before anything is written:

1. drift: recomputed ``estimatedTokens`` and content hash match the preview
2. the preview carries a previewer block
3. the previewer signature verifies
4. the preview file still matches ``preview.sha256``

The certificate replaces any earlier one of the same lineage.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, ClassVar

from dokuforge.core.documents import (
    CERTIFIER_SIGNATURE,
    PREVIEWER_SIGNATURE,
    base_metadata,
    certified_hash,
)
from dokuforge.core.fsio import READ_ONLY, atomic_write_json, atomic_write_text, remove_file
from dokuforge.core.hasher import verify_manifest
from dokuforge.core.timestamps import parse_validity
from dokuforge.core.verifier import (
    DigestMismatchError,
    check_content_drift,
    check_previewer_signature,
    sidecar_path,
)
from dokuforge.errors import ForgeInputError, ForgeIntegrityError
from dokuforge.models.artifacts import (
    AgentRef,
    ArtifactState,
    CertifiedArtifact,
    agent_ref_of,
    as_certified,
    classify_document,
    require_transition,
)
from dokuforge.models.identity import IdentityRole
from dokuforge.stages.base import BaseStage, Signer
from dokuforge.stages.preview import MANIFEST_NAME, preview_filename

logger = logging.getLogger(__name__)


class UncertifiablePreviewError(ForgeIntegrityError):
    """Raised when a preview is malformed or lacks the previewer block."""

    remediation = "Re-run `dokuforge preview` with a previewer identity available."


def certificate_filename(agent_ref: AgentRef) -> str:
    return f"{agent_ref.slug}.cert.json"


class CertifyStage(BaseStage):
    """Certifies the preview of one agent lineage."""

    stage_id: ClassVar[str] = "certify"
    display_name: ClassVar[str] = "Certifier"

    def certify(
        self,
        preview_path: Path,
        certifier: str | None = None,
        validity: str | None = None,
    ) -> CertifiedArtifact:
        """Certify the preview at *preview_path*.

        Parameters
        ----------
        preview_path:
            A ``*_preview.json`` written by the preview stage.
        certifier:
            Certifier identity name; defaults to ``config.certifier`` or the
            only certifier on file.
        validity:
            ``<n>d|w|m|y``; defaults to ``config.validity``.
        """
        return self.run_stage(
            {"preview_path": Path(preview_path), "certifier": certifier, "validity": validity}
        )["artifact"]

    def preview_path_for(self, agent_ref: AgentRef) -> Path:
        return self.layout.previews_dir(agent_ref.agent_id) / preview_filename(agent_ref)

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        preview_path: Path = run_context["preview_path"]
        if not preview_path.is_file():
            raise ForgeInputError(
                f"No preview found at {preview_path}.",
                remediation="Run `dokuforge preview` first.",
            )
        try:
            preview: dict[str, Any] = json.loads(preview_path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise UncertifiablePreviewError(f"{preview_path.name} is not valid JSON: {exc}") from exc
        if not isinstance(preview, dict):
            raise UncertifiablePreviewError(f"{preview_path.name} does not hold a JSON object.")

        # -- gates ---------------------------------------------------------
        check_content_drift(preview)
        if not isinstance(preview.get("previewer"), dict) or not preview["previewer"]:
            raise UncertifiablePreviewError(
                f"{preview_path.name} has no previewer block; it cannot be certified."
            )
        check_previewer_signature(preview)
        self._check_manifest(preview_path)
        require_transition(classify_document(preview), ArtifactState.CERTIFIED)

        agent_ref = agent_ref_of(preview)
        signer = self.resolve_signer(
            IdentityRole.CERTIFIER, run_context.get("certifier") or self.config.certifier
        )
        valid_from, valid_until = parse_validity(
            run_context.get("validity") or self.config.validity, self.now()
        )

        # -- build ---------------------------------------------------------
        preview_meta = preview.get("metadata", {})
        certificate = {k: v for k, v in preview.items() if k != "metadata"}
        certificate["certifier"] = signer.identity.block("certifier")

        pin = self.config.version_pin
        metadata = base_metadata(pin, pin.cert_format, valid_from.isoformat())
        metadata.update(
            {
                "experimental": self.config.experimental,
                "targetModel": preview_meta.get("targetModel"),
                "validFrom": valid_from.isoformat(),
                "validUntil": valid_until.isoformat(),
                "previewerKeyVersion": preview_meta.get("previewerKeyVersion"),
                "previewerFingerprint": preview_meta.get("previewerFingerprint"),
                PREVIEWER_SIGNATURE: preview_meta.get(PREVIEWER_SIGNATURE),
                "certifierKeyVersion": signer.identity.key_version,
                "certifierFingerprint": signer.identity.fingerprint,
            }
        )
        certificate["metadata"] = metadata
        digest = certified_hash(certificate)
        metadata["sha256"] = digest
        metadata[CERTIFIER_SIGNATURE] = signer.sign(digest)

        cert_path = self.layout.certified_dir(agent_ref.agent_id) / certificate_filename(agent_ref)
        artifact = as_certified(certificate, cert_path)
        result: dict[str, Any] = {"artifact": artifact, "warnings": []}
        if self.config.doctor:
            return result

        # -- write ---------------------------------------------------------
        for stale in (cert_path, sidecar_path(cert_path)):
            remove_file(stale)
        atomic_write_json(cert_path, certificate, READ_ONLY)
        atomic_write_text(sidecar_path(cert_path), digest, READ_ONLY)
        self._write_records(agent_ref, signer, artifact, metadata)
        result["_audit"] = [
            self.audit_entry(
                signer, agent_ref=agent_ref.slug, sha256=digest, artifact_path=str(cert_path)
            )
        ]
        logger.info("Certified %s until %s", agent_ref.slug, metadata["validUntil"])
        return result

    @staticmethod
    def _check_manifest(preview_path: Path) -> None:
        """The preview file must still hash to its ``preview.sha256`` line."""
        manifest = preview_path.parent / MANIFEST_NAME
        if not manifest.is_file():
            raise DigestMismatchError(
                f"No {MANIFEST_NAME} next to {preview_path.name}.",
                remediation="Re-run `dokuforge preview` to regenerate the manifest.",
            )
        listed = {
            line.partition("  ")[2]
            for line in manifest.read_text(encoding="utf-8").splitlines()
            if line.strip()
        }
        if preview_path.name not in listed:
            raise DigestMismatchError(f"{preview_path.name} is not listed in {MANIFEST_NAME}.")
        if preview_path.name in verify_manifest(preview_path.parent, MANIFEST_NAME):
            raise DigestMismatchError(
                f"{preview_path.name} changed since the manifest was written.",
                remediation="Re-run `dokuforge preview`, then certify.",
            )

    def _write_records(
        self,
        agent_ref: AgentRef,
        signer: Signer,
        artifact: CertifiedArtifact,
        metadata: dict[str, Any],
    ) -> None:
        stamp = self.now().isoformat()
        self.write_log(
            "certified",
            agent_ref.agent_id,
            f"certify@{agent_ref.birth}.log",
            [
                f"{stamp} certified {agent_ref.slug} signed_by={signer.identity.name} "
                f"key_path={signer.key_path} sha256={artifact.sha256} timestamp={stamp}"
            ],
        )
        self.write_report(
            "certified",
            agent_ref.agent_id,
            f"certify@{agent_ref.birth}.json",
            {
                "agent": agent_ref.slug,
                "certifier": signer.identity.name,
                "certifierKeyVersion": artifact.certifier_key_version,
                "certifierFingerprint": signer.identity.fingerprint,
                "validFrom": metadata["validFrom"],
                "validUntil": metadata["validUntil"],
                "sha256": artifact.sha256,
                "certifiedAt": stamp,
            },
        )
