"""Ed25519 signing via PyNaCl (libsodium).

Keys travel as hex strings: a 32-byte seed for the private half and a
32-byte verify key for the public half.  Verification is fail-closed -
malformed input returns ``False`` rather than raising.
"""

from __future__ import annotations

import hashlib
import logging

import nacl.signing
from nacl.exceptions import BadSignatureError

logger = logging.getLogger(__name__)


def generate_keypair() -> tuple[str, str]:
    """Generate a signing key-pair.

    Returns
    -------
    tuple[str, str]
        ``(private_key_hex, public_key_hex)``
    """
    sk = nacl.signing.SigningKey.generate()
    return sk.encode().hex(), sk.verify_key.encode().hex()


def public_key_for(private_key: str) -> str:
    """Derive the hex public key from a hex private seed."""
    sk = nacl.signing.SigningKey(bytes.fromhex(private_key))
    return sk.verify_key.encode().hex()


def sign_data(data: bytes, private_key: str) -> str:
    """Sign *data* with *private_key* and return the hex-encoded signature.

    Parameters
    ----------
    data:
        Raw bytes to sign (typically a document's SHA-256 hex digest).
    private_key:
        Hex-encoded private key (seed) returned by ``generate_keypair()``.

    Returns
    -------
    str
        Hex-encoded signature (128 hex chars = 64 bytes for Ed25519).
    """
    sk = nacl.signing.SigningKey(bytes.fromhex(private_key))
    return sk.sign(data).signature.hex()


def verify_data(data: bytes, signature: str, public_key: str) -> bool:
    """Verify that *signature* is valid for *data* under *public_key*.

    Returns ``False`` if the signature is empty, malformed, or does not
    verify.
    """
    if not signature or not public_key:
        return False
    try:
        vk = nacl.signing.VerifyKey(bytes.fromhex(public_key))
        vk.verify(data, bytes.fromhex(signature))
        return True
    except (BadSignatureError, ValueError, TypeError) as exc:
        logger.debug("Signature rejected: %s", type(exc).__name__)
        return False


def key_fingerprint(public_key: str) -> str:
    """SHA-256 of the raw public key bytes (a pure function of the key)."""
    if not public_key:
        return ""
    return hashlib.sha256(bytes.fromhex(public_key)).hexdigest()
