"""Integrity checks shared by the pipeline stages and the bundle verifier.

Each ``check_*`` function raises on failure.  The stages call them as
hard gates; ``BundleVerifier`` runs all that apply to a document and
collects the outcome into a ``VerificationReport``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from dokuforge.core.documents import (
    CERTIFIER_SIGNATURE,
    COMPILER_SIGNATURE,
    PREVIEWER_SIGNATURE,
    certified_hash,
    certified_view,
    compiled_hash,
    content_sha256,
    content_tokens,
)
from dokuforge.core.signing import key_fingerprint, verify_data
from dokuforge.errors import ForgeIntegrityError
from dokuforge.models.artifacts import ArtifactState, classify_document
from dokuforge.models.reports import VerificationReport

logger = logging.getLogger(__name__)


class TokenDriftError(ForgeIntegrityError):
    """Raised when a preview's content no longer matches its stored signals."""

    remediation = "Content changed since preview; re-run `dokuforge preview`, then certify."


class SignatureVerificationError(ForgeIntegrityError):
    """Raised when a stage signature does not verify."""


class DigestMismatchError(ForgeIntegrityError):
    """Raised when a stored digest does not match a recomputed one."""


def sidecar_path(artifact_path: Path) -> Path:
    """``x.cert.json`` -> ``x.cert.sha256``."""
    artifact_path = Path(artifact_path)
    return artifact_path.with_name(artifact_path.name.removesuffix(".json") + ".sha256")


def _block(document: dict[str, Any], section: str) -> dict[str, Any]:
    value = document.get(section)
    return value if isinstance(value, dict) else {}


def _verify_block_signature(
    document: dict[str, Any], section: str, field: str, digest: str
) -> None:
    block = _block(document, section)
    public_key = str(block.get("publicKey", ""))
    if not public_key:
        raise SignatureVerificationError(f"The {section} block carries no public key.")
    if block.get("fingerprint") != key_fingerprint(public_key):
        raise SignatureVerificationError(
            f"The {section} fingerprint does not match its public key."
        )
    signature = str(document.get("metadata", {}).get(field, ""))
    if not verify_data(digest.encode("utf-8"), signature, public_key):
        raise SignatureVerificationError(
            f"{section.capitalize()} signature does not verify for "
            f"{block.get(f'{section}Name', '?')!r}."
        )


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------


def check_content_drift(document: dict[str, Any]) -> None:
    """Recompute ``estimatedTokens`` and the content hash and compare.

    The content hash is only compared when the document stores one.
    """
    tripped: list[str] = []
    stored_tokens = document.get("estimatedTokens")
    fresh_tokens = content_tokens(document)
    if stored_tokens != fresh_tokens:
        tripped.append(f"estimatedTokens (stored {stored_tokens}, recomputed {fresh_tokens})")
    stored_sha = document.get("sha256")
    if stored_sha is not None and stored_sha != content_sha256(document):
        tripped.append("content sha256")
    if tripped:
        raise TokenDriftError("Drift detected: " + "; ".join(tripped) + ".")


def check_previewer_signature(document: dict[str, Any]) -> None:
    _verify_block_signature(document, "previewer", PREVIEWER_SIGNATURE, content_sha256(document))


def check_certifier_signature(certificate: dict[str, Any]) -> None:
    """Recompute the certificate hash, then verify the certifier's signature."""
    recorded = str(certificate.get("metadata", {}).get("sha256", ""))
    actual = certified_hash(certificate)
    if recorded != actual:
        raise DigestMismatchError(
            f"Certificate hash mismatch: recorded {recorded[:16] or '<none>'}..., "
            f"recomputed {actual[:16]}..."
        )
    _verify_block_signature(certificate, "certifier", CERTIFIER_SIGNATURE, actual)


def check_compiler_signature(bundle: dict[str, Any]) -> None:
    recorded = str(bundle.get("metadata", {}).get("sha256", ""))
    actual = compiled_hash(bundle)
    if recorded != actual:
        raise DigestMismatchError(
            f"Bundle hash mismatch: recorded {recorded[:16] or '<none>'}..., "
            f"recomputed {actual[:16]}..."
        )
    _verify_block_signature(bundle, "compiler", COMPILER_SIGNATURE, actual)


def check_sidecar(artifact_path: Path, document: dict[str, Any]) -> None:
    """Compare the ``.sha256`` sidecar with ``metadata.sha256``."""
    path = sidecar_path(artifact_path)
    if not path.is_file():
        raise DigestMismatchError(f"Sidecar {path.name} is missing.")
    recorded = path.read_text(encoding="utf-8").strip()
    if recorded != document.get("metadata", {}).get("sha256"):
        raise DigestMismatchError(f"Sidecar {path.name} does not match the artifact hash.")


# ---------------------------------------------------------------------------
# Verifier party
# ---------------------------------------------------------------------------


def _unreadable(path: Path, message: str) -> VerificationReport:
    return VerificationReport(
        path=str(path), state="unreadable", checks={"readable": False}, messages=[message]
    )


class BundleVerifier:
    """Re-checks every integrity signal of a preview, certificate or bundle."""

    def verify(self, path: Path) -> VerificationReport:
        path = Path(path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            return _unreadable(path, str(exc))
        if not isinstance(document, dict):
            return _unreadable(path, f"{path.name} does not hold a JSON object.")

        state = classify_document(document)
        checks: list[tuple[str, Callable[[], None]]] = [
            ("content_drift", lambda: check_content_drift(document)),
            ("previewer_signature", lambda: check_previewer_signature(document)),
        ]
        if state is ArtifactState.CERTIFIED:
            checks.append(("certifier_signature", lambda: check_certifier_signature(document)))
        elif state is ArtifactState.COMPILED:
            checks.append(
                ("certifier_signature", lambda: check_certifier_signature(certified_view(document)))
            )
            checks.append(("compiler_signature", lambda: check_compiler_signature(document)))
        if path.name.endswith(".cert.json"):
            checks.append(("sidecar", lambda: check_sidecar(path, document)))

        results: dict[str, bool] = {}
        messages: list[str] = []
        for name, check in checks:
            try:
                check()
                results[name] = True
            except ForgeIntegrityError as exc:
                results[name] = False
                messages.append(f"{name}: {exc}")
        report = VerificationReport(
            path=str(path), state=state.value, checks=results, messages=messages
        )
        logger.info("Verified %s (%s): %s", path.name, state.value, "ok" if report.ok else "FAILED")
        return report
