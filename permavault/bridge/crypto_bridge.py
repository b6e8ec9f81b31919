"""Crypto bridge — Ed25519 signing for manifests via PyNaCl (libsodium).

Keys travel as hex strings: the private key is the 32-byte seed, the public
key the 32-byte verify key.  ``verify_data`` fails closed: any malformed
input returns ``False`` rather than raising.
"""

from __future__ import annotations

import hashlib
import logging

import nacl.signing
from nacl.exceptions import BadSignatureError

logger = logging.getLogger(__name__)


def generate_keypair() -> tuple[str, str]:
    """Generate an Ed25519 key pair.

    Returns
    -------
    tuple[str, str]
        ``(private_key_hex, public_key_hex)``, 64 hex chars each.
    """
    sk = nacl.signing.SigningKey.generate()
    return sk.encode().hex(), sk.verify_key.encode().hex()


def public_key_for(private_key: str) -> str:
    """Derive the hex public key from a hex private key (seed)."""
    sk = nacl.signing.SigningKey(bytes.fromhex(private_key))
    return sk.verify_key.encode().hex()


def sign_data(data: bytes, private_key: str) -> str:
    """Sign *data* and return the hex signature (128 hex chars)."""
    sk = nacl.signing.SigningKey(bytes.fromhex(private_key))
    return sk.sign(data).signature.hex()


def verify_data(data: bytes, signature: str, public_key: str) -> bool:
    """Return ``True`` if *signature* is valid for *data* under *public_key*."""
    if not signature or not public_key:
        return False
    try:
        vk = nacl.signing.VerifyKey(bytes.fromhex(public_key))
        vk.verify(data, bytes.fromhex(signature))
        return True
    except (BadSignatureError, ValueError, TypeError):
        # BadSignatureError: cryptographic mismatch
        # ValueError / TypeError: malformed hex or wrong key length
        return False


def key_fingerprint(public_key: str) -> str:
    """First 16 hex chars of SHA-256(public key) — for logs and summaries."""
    if not public_key:
        return ""
    return hashlib.sha256(public_key.encode("utf-8")).hexdigest()[:16]


class ManifestSigner:
    """Holds the signing key used for manifests.

    When no key is configured an ephemeral key pair is generated and a
    warning is logged; manifests are still verifiable against the embedded
    public key, but nothing ties them to a long-lived identity.
    """

    def __init__(self, private_key: str = "") -> None:
        if private_key:
            self._private_key = private_key
            self._public_key = public_key_for(private_key)
            self.ephemeral = False
        else:
            self._private_key, self._public_key = generate_keypair()
            self.ephemeral = True
            logger.warning(
                "No manifest signing key configured; using ephemeral key %s. "
                "Set PERMAVAULT_SIGNING_KEY for a stable signer.",
                key_fingerprint(self._public_key),
            )

    @property
    def public_key(self) -> str:
        return self._public_key

    @property
    def fingerprint(self) -> str:
        return key_fingerprint(self._public_key)

    def sign(self, data: bytes) -> str:
        return sign_data(data, self._private_key)
