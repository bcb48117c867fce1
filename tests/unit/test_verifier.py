"""Tests for the shared integrity checks and the BundleVerifier."""

from __future__ import annotations

import copy
from pathlib import Path

import pytest

from dokuforge.core.fsio import read_json
from dokuforge.core.verifier import (
    BundleVerifier,
    DigestMismatchError,
    SignatureVerificationError,
    TokenDriftError,
    check_certifier_signature,
    check_content_drift,
    check_previewer_signature,
    sidecar_path,
)
from dokuforge.errors import ForgeIntegrityError

from conftest import rewrite_json


def test_sidecar_path():
    assert sidecar_path(Path("a@b.cert.json")) == Path("a@b.cert.sha256")
    assert sidecar_path(Path("x/a.compiled.v2.cert.json")).name == "a.compiled.v2.cert.sha256"


class TestChecks:
    def test_drift_names_token_signal(self, previewed):
        document = copy.deepcopy(previewed.document)
        document["estimatedTokens"] += 1
        with pytest.raises(TokenDriftError, match="estimatedTokens") as excinfo:
            check_content_drift(document)
        assert "content sha256" not in str(excinfo.value)

    def test_drift_names_hash_signal(self, previewed):
        document = copy.deepcopy(previewed.document)
        document["plan"]["description"] = document["plan"]["description"].upper()
        with pytest.raises(TokenDriftError, match="content sha256"):
            check_content_drift(document)

    def test_previewer_fingerprint_must_match_key(self, previewed):
        document = copy.deepcopy(previewed.document)
        document["previewer"]["fingerprint"] = "00" * 32
        with pytest.raises(SignatureVerificationError, match="fingerprint"):
            check_previewer_signature(document)

    def test_certificate_hash_recomputed(self, certified):
        document = copy.deepcopy(certified.document)
        document["metadata"]["validUntil"] = "2999-01-01T00:00:00+00:00"
        with pytest.raises(DigestMismatchError):
            check_certifier_signature(document)

    def test_resigned_with_foreign_key(self, certified, previewed):
        """Swapping in another party's public key must not verify."""
        document = copy.deepcopy(certified.document)
        document["certifier"]["publicKey"] = previewed.document["previewer"]["publicKey"]
        document["certifier"]["fingerprint"] = previewed.document["previewer"]["fingerprint"]
        with pytest.raises(ForgeIntegrityError):
            check_certifier_signature(document)


class TestBundleVerifier:
    def test_preview(self, previewed):
        report = BundleVerifier().verify(previewed.path)
        assert report.state == "previewed"
        assert report.ok
        assert set(report.checks) == {"content_drift", "previewer_signature"}

    def test_certificate(self, certified):
        report = BundleVerifier().verify(certified.path)
        assert report.state == "certified"
        assert report.ok
        assert {"certifier_signature", "sidecar"} <= set(report.checks)

    def test_compiled_bundle(self, workspace, certified):
        [artifact] = workspace.compile_stage().compile([certified])
        report = BundleVerifier().verify(artifact.path)
        assert report.state == "compiled"
        assert report.ok, report.messages
        assert {"certifier_signature", "compiler_signature", "sidecar"} <= set(report.checks)

    def test_tampered_certificate(self, certified):
        document = read_json(certified.path)
        document["metadata"]["experimental"] = True
        rewrite_json(certified.path, document)
        report = BundleVerifier().verify(certified.path)
        assert not report.ok
        assert "certifier_signature" in report.failed
        assert report.messages

    def test_unreadable(self, tmp_path):
        path = tmp_path / "junk.cert.json"
        path.write_text("{", encoding="utf-8")
        report = BundleVerifier().verify(path)
        assert report.state == "unreadable"
        assert not report.ok

    @pytest.mark.parametrize("text", ["[]", "[1, 2]", '"cert"'])
    def test_non_object_document(self, tmp_path, text):
        path = tmp_path / "list.cert.json"
        path.write_text(text, encoding="utf-8")
        report = BundleVerifier().verify(path)
        assert report.state == "unreadable"
        assert not report.ok
        assert "JSON object" in report.messages[0]

    def test_undecodable_bytes(self, tmp_path):
        path = tmp_path / "binary.cert.json"
        path.write_bytes(b"\xff\xfe\x00")
        report = BundleVerifier().verify(path)
        assert report.state == "unreadable"
